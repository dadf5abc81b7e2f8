"""Email to Markdown: convert forwarded mail and deliver it to cloud storage.

Heavy imports are deferred. Use explicit imports:
    from email_markdown.app import build_orchestrator
    from email_markdown.delivery.orchestrator import DeliveryOrchestrator
    etc.
"""

from email_markdown.config import Settings, configure_logging


def __getattr__(name):
    """Lazy imports for the wiring helpers and the orchestrator."""
    if name == "build_orchestrator":
        from email_markdown.app import build_orchestrator
        return build_orchestrator
    if name == "build_account_service":
        from email_markdown.app import build_account_service
        return build_account_service
    if name == "DeliveryOrchestrator":
        from email_markdown.delivery.orchestrator import DeliveryOrchestrator
        return DeliveryOrchestrator
    raise AttributeError(f"module 'email_markdown' has no attribute {name!r}")


__all__ = [
    "DeliveryOrchestrator",
    "Settings",
    "build_account_service",
    "build_orchestrator",
    "configure_logging",
]
