"""
Errors raised by the appointment lifecycle.

They are DRF exceptions, so API views let them propagate and the framework
renders the status code and message.
"""
from rest_framework import status
from rest_framework.exceptions import APIException, NotFound, PermissionDenied


class ConflictError(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "slot already taken"
    default_code = "slot_taken"


class NotFoundError(NotFound):
    default_detail = "appointment not found"
    default_code = "not_found"


class AuthError(PermissionDenied):
    default_detail = "You do not have permission to perform this action."
    default_code = "permission_denied"


class ProfileRequired(AuthError):
    default_detail = "A client profile is required before booking."
    default_code = "profile_required"


class TransportError(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Upstream service unavailable."
    default_code = "transport_error"


class InvalidTransition(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Transition not allowed from the current status."
    default_code = "invalid_transition"

    def __init__(self, current_status, action):
        super().__init__(f"Cannot {action} an appointment that is {current_status}.")
        self.current_status = current_status
        self.action = action


class InvalidToken(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "invalid or expired confirmation token"
    default_code = "invalid_token"
