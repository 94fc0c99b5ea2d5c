class BinDaysError(Exception):
    """Base class for all errors raised by the bindays package."""


class ProtocolViolation(BinDaysError):
    """
    The caller broke the step protocol: an unexpected step id, a missing
    response, or a step invoked after the conversation finished.

    Never retried, it signals an integration bug rather than bad upstream data.
    """


class UpstreamDataError(BinDaysError):
    """A council response was missing a required field or held unparseable data."""


class DecodeError(BinDaysError):
    """An opaque address uid could not be decoded into its fields."""


class InvalidPostcodeError(BinDaysError, ValueError):
    def __init__(self, postcode: str):
        self.postcode = postcode
        super().__init__(f"Invalid postcode: {postcode}")


class CollectorNotFoundError(BinDaysError, ValueError):
    def __init__(self, gov_uk_id: str):
        self.gov_uk_id = gov_uk_id
        super().__init__(f"No collector found with gov.uk ID: {gov_uk_id}")


class GovUkIdNotFoundError(BinDaysError):
    def __init__(self, postcode: str):
        self.postcode = postcode
        super().__init__(f"No gov.uk ID found for postcode: {postcode}")
