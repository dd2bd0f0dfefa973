from .signer import WalletSigner
from .telemetry import NullSink, ObservabilitySink, safe_emit

__all__ = ["NullSink", "ObservabilitySink", "WalletSigner", "safe_emit"]
