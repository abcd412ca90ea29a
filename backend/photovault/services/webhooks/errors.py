"""Hard webhook errors. Raising one leaves the event unprocessed so Stripe retries it."""


class WebhookProcessingError(Exception):
    """Base class for handler failures that must surface as a 500"""
    pass


class UserNotFoundError(WebhookProcessingError):
    """A required local user could not be resolved"""
    pass


class MissingMetadataError(WebhookProcessingError):
    """Checkout metadata lacks a field the handler cannot work without"""
    pass


class CustomerEmailMissingError(WebhookProcessingError):
    """No email could be resolved for a gallery checkout"""
    pass


class IdentityProvisioningError(WebhookProcessingError):
    """Creating (or re-resolving) a client identity failed"""
    pass
