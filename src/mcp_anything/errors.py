"""Exception hierarchy shared by the catalog compiler and the runtime."""

from typing import Optional


class MCPAnythingError(Exception):
    """Base exception for mcp-anything."""


class DescriptionLoadError(MCPAnythingError):
    """The API description could not be fetched or parsed."""


class AuthorizationNotConfiguredError(MCPAnythingError):
    """No authorization or token endpoint is known for this catalog."""


# -- Callback errors (authorization redirect came back) --


class CallbackError(MCPAnythingError):
    """Base class for failures while handling the OAuth callback."""


class InvalidStateError(CallbackError):
    """The state token is unknown, expired or was already consumed."""


class TokenExchangeFailedError(CallbackError):
    """The provider refused to exchange the authorization code."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


# -- Credential errors (tool invocation needs a token) --


class CredentialError(MCPAnythingError):
    """Base class for failures resolving a user's access token."""


class NotLinkedError(CredentialError):
    """The user never completed the authorization flow."""


class ExpiredError(CredentialError):
    """The access token expired and there is no refresh token."""


# -- Upstream API --


class ApiError(MCPAnythingError):
    """Outbound API call failed.

    ``status_code`` is ``None`` for transport failures (connect errors,
    timeouts); otherwise it carries the non-success HTTP status and
    ``body`` the raw response text.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401


class PublishError(MCPAnythingError):
    """Publishing the compiled artifact failed."""
