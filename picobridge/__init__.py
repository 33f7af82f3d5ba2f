"""
picobridge - discovery and uniform calls for pico-engine actor hierarchies

Components:
- descriptors.py: fresh actor snapshots, tag and name lookups
- resolver.py: root -> owner -> manifold channel walk, name resolution
- installer.py: idempotent ruleset installation + settle check
- envelope.py: uniform query/event envelope that never raises
- polling.py: fixed-delay bounded polling with cancellation
- bootstrap.py: staged bootstrap orchestration
- operations.py: Manifold convenience calls built on the envelope
- config.py / log.py: settings and structlog setup

The HTTP seam lives in `connectors.engine_client`.
"""

__version__ = "0.1.0"

# Lazy imports - connectors.engine_client imports picobridge.errors, so the
# package itself must stay cheap to import.
_EXPORTS = {
    "ActorDescriptor": ".descriptors",
    "Channel": ".descriptors",
    "fetch_descriptor": ".descriptors",
    "find_channel_by_tag": ".descriptors",
    "find_child_by_name": ".descriptors",
    "HierarchyPath": ".resolver",
    "resolve": ".resolver",
    "resolve_by_name": ".resolver",
    "resolve_root": ".resolver",
    "ensure_installed": ".installer",
    "wait_until_installed": ".installer",
    "OperationEnvelope": ".envelope",
    "OperationResult": ".envelope",
    "execute": ".envelope",
    "query": ".envelope",
    "event": ".envelope",
    "application_error": ".envelope",
    "raise_for_application_error": ".envelope",
    "poll_until": ".polling",
    "wait_for_root": ".polling",
    "BootstrapOrchestrator": ".bootstrap",
    "BootstrapStage": ".bootstrap",
    "run_bootstrap": ".bootstrap",
    "BridgeError": ".errors",
    "InvalidRequest": ".errors",
    "TransportError": ".errors",
    "UpstreamHttpError": ".errors",
    "NotFoundError": ".errors",
    "ResolutionError": ".errors",
    "PollTimeoutError": ".errors",
    "PollCancelledError": ".errors",
    "BootstrapTimeoutError": ".errors",
    "ApplicationError": ".errors",
}


def __getattr__(name):
    module = _EXPORTS.get(name)
    if module is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    from importlib import import_module

    return getattr(import_module(module, __name__), name)


__all__ = ["__version__", *_EXPORTS]
