from fastapi import Depends, Header, HTTPException, status

from kidwallet_api.core.settings import settings


async def require_wallet_api_key(x_api_key: str = Header("", alias="X-API-Key")) -> None:
    """Guard parent and operator routes; an empty configured key disables the check."""

    if not settings.wallet_api_key:
        return

    if x_api_key != settings.wallet_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )


def wallet_api_key_dependency() -> Depends:
    return Depends(require_wallet_api_key)
