class SolanaRpcError(Exception):
    pass


class RpcRateLimitedError(SolanaRpcError):
    pass


class AccountNotFoundError(SolanaRpcError):
    pass


class RpcTransportError(SolanaRpcError):
    pass


RATE_LIMIT_MARKERS = ("too many requests", "rate limit", "429")


def looks_rate_limited(message: str) -> bool:
    text = message.lower()
    return any(marker in text for marker in RATE_LIMIT_MARKERS)
