"""Domain-specific errors for trainctl."""


class TrainctlError(Exception):
    """Base error for trainctl."""


class ProfileValidationError(TrainctlError):
    """Raised when a profile file does not conform to schema or semantics."""


class ProfileLoadError(TrainctlError):
    """Raised when loading profile sources fails."""


class ProfileSelectionError(TrainctlError):
    """Raised when a profile id cannot be resolved."""


class InvalidArgumentError(TrainctlError, ValueError):
    """Raised when a caller supplies an out-of-range value, before any I/O."""


class FrameError(TrainctlError):
    """Base error for frame encoding/decoding."""


class PayloadTooLargeError(FrameError):
    """Raised when a payload does not fit the one-byte length field."""


class DecodeError(FrameError):
    """Raised when an inbound frame is malformed."""


class BadMarkerError(DecodeError):
    """Raised when a frame does not start with the start marker."""


class LengthMismatchError(DecodeError):
    """Raised when the declared length disagrees with the bytes received."""


class ChecksumMismatchError(DecodeError):
    """Raised when the trailing checksum byte is wrong."""


class ConnectionStateError(TrainctlError):
    """Raised when the connection lifecycle is used out of order."""


class DiscoveryTimeoutError(TrainctlError):
    """Raised when no matching peripheral shows up before the timeout."""


DeviceNotFoundError = DiscoveryTimeoutError


class ControlEndpointMissingError(TrainctlError):
    """Raised when the peripheral lacks the control characteristic."""


class TransportError(TrainctlError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised on BLE connect or service discovery failures."""


class TransportSendError(TransportError):
    """Raised when writing a frame fails."""


class TransportSubscribeError(TransportError):
    """Raised when arming notifications fails."""


class TransportTimeoutError(TransportError):
    """Raised when a transport operation times out."""
