"""
ErrorPresenter - User-friendly error message generation.

Transforms broker API and engine exceptions into actionable messages.
Supports verbose mode for technical details.
"""

import traceback
from typing import List, Tuple

from ...domain.exceptions import (
    AuthenticationError,
    CircuitBreakerError,
    ClientError,
    DnsResolutionError,
    NetworkError,
    OperationCancelledError,
    PermissionDeniedError,
    RateLimitExceededError,
    ServiceError,
    TlsHandshakeError,
    TransportOwnershipError,
)


class ErrorPresenter:
    """
    Presents errors to users with helpful messages and actions.

    Provides two modes:
    - Normal: User-friendly message with actionable suggestions
    - Verbose: Technical details including stack trace
    """

    @staticmethod
    def present(error: BaseException, verbose: bool = False) -> str:
        """
        Present error with user-friendly message.

        Args:
            error: Exception to present
            verbose: Show technical details (stack trace, error type)

        Returns:
            Formatted error message
        """
        message, suggestions = ErrorPresenter._get_friendly_message(error)

        if verbose:
            return ErrorPresenter._format_verbose(error, message, suggestions)
        return ErrorPresenter._format_friendly(message, suggestions)

    @staticmethod
    def _get_friendly_message(error: BaseException) -> Tuple[str, List[str]]:
        """
        Get friendly message and actionable suggestions for error.

        More specific classes are checked before their bases.
        """
        if isinstance(error, CircuitBreakerError):
            return (
                "Requests suspended: the circuit breaker is open after repeated failures",
                [
                    "The remote API was not contacted for this request",
                    "Wait for circuit_breaker.recovery_timeout to pass, then retry",
                    "Check the provider status page for outages",
                ]
            )

        if isinstance(error, RateLimitExceededError):
            wait = f" Retry after {error.retry_after:.0f}s." if error.retry_after else ""
            return (
                f"Provider rate limit exceeded.{wait}",
                [
                    "Lower rate_limit.requests to stay under the provider quota",
                    "Reduce the number of concurrent workers",
                ]
            )

        if isinstance(error, AuthenticationError):
            return (
                "API credentials were rejected",
                [
                    "Check the API key headers in transport.headers",
                    "Paper and live environments use different keys",
                ]
            )

        if isinstance(error, PermissionDeniedError):
            return (
                "The account is not permitted to perform this request",
                ["Check the account status and trading permissions"]
            )

        if isinstance(error, ClientError):
            return (
                f"Request rejected by the API ({error.status_code or 'client error'})",
                [
                    "Client errors are never retried",
                    "Check the request parameters",
                ]
            )

        if isinstance(error, DnsResolutionError):
            return (
                "Could not resolve the API host name",
                [
                    "Check transport.base_url for typos",
                    "Check DNS and network connectivity",
                ]
            )

        if isinstance(error, TlsHandshakeError):
            return (
                "TLS handshake with the API failed",
                [
                    "Check the system clock and CA certificates",
                    "Check for an intercepting proxy",
                ]
            )

        if isinstance(error, NetworkError):
            return (
                "Could not reach the API",
                [
                    "Check network connectivity",
                    "Verify the base URL is reachable: `curl -I <base_url>`",
                ]
            )

        if isinstance(error, ServiceError):
            return (
                "The API reported a server-side failure",
                [
                    "The provider may be in maintenance; try again later",
                    "Check the provider status page",
                ]
            )

        if isinstance(error, OperationCancelledError):
            return ("Operation cancelled", [])

        if isinstance(error, TransportOwnershipError):
            return (
                "A transport was shared between workers",
                [
                    "Each worker must acquire its own transport from the pool",
                    "Release a transport before acquiring another for the same worker",
                ]
            )

        if isinstance(error, KeyboardInterrupt):
            return ("Operation cancelled by user", [])

        if isinstance(error, FileNotFoundError):
            file_path = str(error).replace("Configuration file not found: ", "").strip("'\"")
            return (
                f"File not found: {file_path}",
                [
                    "Check the file path is correct",
                    "Create a default configuration: `tradewire config --init`",
                ]
            )

        error_type = type(error).__name__
        error_msg = str(error) or "No details available"

        return (
            f"An error occurred: {error_type}",
            [
                f"Error details: {error_msg}",
                "Run with --verbose for more information",
                "Check the log file for details"
            ]
        )

    @staticmethod
    def _format_friendly(message: str, suggestions: List[str]) -> str:
        output = [f"Error: {message}"]

        if suggestions:
            output.append("")
            output.append("Suggestions:")
            for suggestion in suggestions:
                output.append(f"  - {suggestion}")

        return "\n".join(output)

    @staticmethod
    def _format_verbose(error: BaseException, message: str, suggestions: List[str]) -> str:
        """
        Format verbose error message with technical details.

        Includes the error type, message, cause chain and traceback.
        """
        output = [ErrorPresenter._format_friendly(message, suggestions)]

        output.append("")
        output.append("Technical Details:")
        output.append(f"  Error Type: {type(error).__name__}")
        output.append(f"  Error Message: {str(error)}")

        if error.__cause__:
            output.append(f"  Caused by: {type(error.__cause__).__name__}: {str(error.__cause__)}")

        output.append("")
        output.append("Traceback:")
        tb_lines = traceback.format_exception(type(error), error, error.__traceback__)
        for line in tb_lines:
            for sub_line in line.rstrip().split('\n'):
                output.append(f"  {sub_line}")

        return "\n".join(output)
