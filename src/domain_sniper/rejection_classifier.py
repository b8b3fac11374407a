"""
Classification of registrar error responses.

The OVH API answers rejected requests with a JSON body of the form
``{"message": ..., "errorCode": ..., "httpCode": ..., "class": "Client::..."}``.
This module is the only place where those answers are interpreted; every
other component works with the resulting RejectionReason.
"""

from typing import Optional

from .enums import RejectionReason


class RejectionClassifier:
    """
    Maps a vendor error response to a RejectionReason.

    Precedence: permission problems first, then "not available" markers,
    then generic bad requests. Anything unrecognized is UNKNOWN, which the
    availability probe treats as indeterminate.
    """

    PERMISSION_STATUSES = frozenset({401, 403})
    PERMISSION_CLASSES = frozenset({
        "client::forbidden",
        "client::unauthorized",
    })
    PERMISSION_MESSAGES = (
        "not been granted",
        "invalid credential",
        "invalid signature",
        "this credential is not valid",
        "invalid application key",
    )

    NOT_AVAILABLE_CLASSES = frozenset({"client::conflict"})
    NOT_AVAILABLE_MESSAGES = (
        "not available",
        "is not available for registration",
        "already registered",
        "domain is already",
        "cannot be ordered",
        "not orderable",
        "no offer",
    )

    MALFORMED_STATUSES = frozenset({400})
    MALFORMED_CLASSES = frozenset({"client::badrequest"})

    def classify(
        self,
        http_status: Optional[int],
        error_class: Optional[str] = None,
        message: Optional[str] = None,
    ) -> RejectionReason:
        """
        Classify a rejected request.

        Args:
            http_status: HTTP status code of the response, if any
            error_class: The ``class`` field of the vendor error body
            message: The ``message`` field of the vendor error body

        Returns:
            The classified RejectionReason
        """
        klass = (error_class or "").strip().lower()
        text = (message or "").lower()

        if (
            http_status in self.PERMISSION_STATUSES
            or klass in self.PERMISSION_CLASSES
            or any(marker in text for marker in self.PERMISSION_MESSAGES)
        ):
            return RejectionReason.PERMISSION_DENIED

        if klass in self.NOT_AVAILABLE_CLASSES or any(
            marker in text for marker in self.NOT_AVAILABLE_MESSAGES
        ):
            return RejectionReason.NOT_AVAILABLE

        if http_status in self.MALFORMED_STATUSES or klass in self.MALFORMED_CLASSES:
            return RejectionReason.MALFORMED_REQUEST

        return RejectionReason.UNKNOWN

    def classify_body(self, http_status: Optional[int], body: object) -> RejectionReason:
        """Classify from a decoded error body, tolerating non-dict payloads."""
        if not isinstance(body, dict):
            return self.classify(http_status, None, str(body) if body else None)
        return self.classify(http_status, body.get("class"), body.get("message"))
