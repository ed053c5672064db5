"""
Error taxonomy shared by the billing and notification services.

Validation errors are raised synchronously to the caller and never persisted.
Dispatch-side errors (render, send) are captured by the scheduler and turned
into log rows or log lines; they never propagate out of a tick.
"""


class ValidationError(ValueError):
    """Caller supplied input that must be corrected before it can be stored."""


class BillingValidationError(ValidationError):
    pass


class PolicyValidationError(ValidationError):
    pass


class TemplateRenderError(Exception):
    """Template could not be turned into a message for this cycle."""


class UnsupportedChannelError(Exception):
    def __init__(self, channel_type: str):
        super().__init__(f"unsupported channel type: {channel_type}")
        self.channel_type = channel_type
