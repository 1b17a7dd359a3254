"""Infrastructure components for AgentKYC.

Clients for external services the workflow depends on.
"""

from agentkyc_core.infrastructure.email import EmailClient, EmailError

__all__ = ["EmailClient", "EmailError"]
