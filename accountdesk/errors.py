"""Domain errors.

Service functions raise these; create_app() registers one handler that
renders them as {"error": ..., "code": ...} with the class's HTTP status.
Nothing in this layer retries; a failed invite, accept or remove is shown
to the user as-is.
"""


class AccountDeskError(Exception):
    status_code = 400
    code = "error"
    default_message = "Request failed."

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self):
        return {"error": self.message, "code": self.code}


class NotAuthorized(AccountDeskError):
    status_code = 403
    code = "not_authorized"
    default_message = "You do not have permission to do that."


class NotFound(AccountDeskError):
    status_code = 404
    code = "not_found"
    default_message = "Not found."


class InvitationNotFound(NotFound):
    code = "invitation_not_found"
    default_message = "Invitation not found."


class InvitationExpired(AccountDeskError):
    status_code = 410
    code = "invitation_expired"
    default_message = "This invitation has expired."


class InvitationAlreadyResolved(AccountDeskError):
    status_code = 409
    code = "invitation_already_resolved"
    default_message = "This invitation has already been accepted."


class CannotRemoveLastOwner(AccountDeskError):
    status_code = 409
    code = "cannot_remove_last_owner"
    default_message = "A workspace must keep at least one owner."


class ValidationError(AccountDeskError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid input."


class InvalidEmail(ValidationError):
    code = "invalid_email"
    default_message = "Please enter a valid email address."


class StorageError(AccountDeskError):
    status_code = 500
    code = "storage_error"
    default_message = "The request could not be saved. Please try again."
