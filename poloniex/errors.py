"""
Custom exceptions for the Poloniex API clients.

Exception hierarchy:
- PoloniexError (base)
  - ConnectionError: push bus session could not be established, joined or closed
  - SubscribeError: the bus rejected (or never answered) a subscribe/unsubscribe call
  - DecodeError: a push payload or REST body did not have the expected shape
  - RegistryMiss: operation on a topic that is not currently registered
  - ConfigurationError: invalid configuration
  - PublicApiError: REST call failed (transport, status code or error body)
"""

from __future__ import annotations

from typing import Any, Optional


class PoloniexError(Exception):
    """Base exception for all client errors."""

    def __init__(
        self,
        message: str,
        *,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.component = component
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.component:
            parts.append(f"[component={self.component}]")
        if self.details:
            parts.append(f"[details={self.details}]")
        return " ".join(parts)


class ConnectionError(PoloniexError):
    """Raised when the bus session cannot be established, joined or closed."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        attempt: int = 0,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.url = url
        self.attempt = attempt
        details = details or {}
        if url:
            details["url"] = url
        if attempt:
            details["attempt"] = attempt
        super().__init__(message, component=component, details=details)


class SubscribeError(PoloniexError):
    """Raised when a subscribe or unsubscribe call is rejected by the bus."""

    def __init__(
        self,
        message: str,
        *,
        topic: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.topic = topic
        details = details or {}
        if topic:
            details["topic"] = topic
        super().__init__(message, component=component, details=details)


class DecodeError(PoloniexError):
    """Raised when a payload cannot be decoded."""

    def __init__(
        self,
        message: str,
        *,
        topic: Optional[str] = None,
        expected_type: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.topic = topic
        self.expected_type = expected_type
        details = details or {}
        if topic:
            details["topic"] = topic
        if expected_type:
            details["expected_type"] = expected_type
        # Raw payload stays out of details to keep log lines short
        super().__init__(message, component=component, details=details)


class RegistryMiss(PoloniexError):
    """Raised when operating on a topic that has no registry entry."""

    def __init__(
        self,
        topic: str,
        *,
        component: Optional[str] = None,
    ) -> None:
        self.topic = topic
        super().__init__(
            f"Topic not registered: {topic}",
            component=component,
            details={"topic": topic},
        )


class ConfigurationError(PoloniexError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.field = field
        self.value = value
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, component=component, details=details)


class PublicApiError(PoloniexError):
    """Raised when a public REST call fails."""

    def __init__(
        self,
        message: str,
        *,
        command: Optional[str] = None,
        status: Optional[int] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.command = command
        self.status = status
        details = details or {}
        if command:
            details["command"] = command
        if status is not None:
            details["status"] = status
        super().__init__(message, component=component, details=details)
