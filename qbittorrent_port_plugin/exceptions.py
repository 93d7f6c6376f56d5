"""
Exceptions raised by the port plugin.

Custom exceptions:
- PortPluginError: Base exception for everything raised by this package
- ConfigError: Raised when the environment does not describe a usable configuration
- PortFileMissingError: Raised when the port file does not exist
- PortFileInvalidError: Raised when the port file does not hold a valid port
- TransportError: Raised when the qBittorrent API cannot be reached
- ProtocolError: Raised when the qBittorrent API answers with something unexpected
- NotAuthorizedError: Raised when qBittorrent rejects the login credentials
- UnauthorizedError: Raised when a request is still rejected after logging in again
"""

from typing import Optional


class PortPluginError(Exception):
    """Base exception for port plugin errors."""
    pass


class ConfigError(PortPluginError):
    """Raised when configuration is missing or invalid."""
    pass


class PortFileError(PortPluginError):
    """Base exception for port file errors."""

    def __init__(self, message: str, path: str):
        super().__init__(message)
        self.path = path


class PortFileMissingError(PortFileError):
    """Raised when the port file does not exist."""
    pass


class PortFileInvalidError(PortFileError):
    """Raised when the port file contents are not a port number."""
    pass


class QBittorrentAPIError(PortPluginError):
    """Base exception for qBittorrent API errors."""
    pass


class TransportError(QBittorrentAPIError):
    """Raised when the HTTP request itself fails."""
    pass


class ProtocolError(QBittorrentAPIError):
    """Raised on a non-success status or an undecodable response."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class NotAuthorizedError(QBittorrentAPIError):
    """Raised when the login endpoint rejects the credentials."""
    pass


class UnauthorizedError(QBittorrentAPIError):
    """Raised when a request is rejected even after re-authenticating."""
    pass
