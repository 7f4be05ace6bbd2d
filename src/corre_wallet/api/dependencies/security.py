from fastapi import Header, HTTPException, status

from corre_wallet.core.settings import settings


async def require_wallet_api_key(x_api_key: str = Header("", alias="X-API-Key")) -> None:
    """Guard operator endpoints; open when no wallet key is configured."""

    if not settings.wallet_api_key:
        return

    if x_api_key != settings.wallet_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
