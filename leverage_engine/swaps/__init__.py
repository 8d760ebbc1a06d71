from .router import SwapRouter, probe_token_kind

__all__ = ["SwapRouter", "probe_token_kind"]
