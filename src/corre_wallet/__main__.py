import uvicorn

from corre_wallet.core.settings import settings


def main() -> None:
    uvicorn.run(
        "corre_wallet.app:create_app",
        factory=True,
        reload=settings.environment == "development",
    )


if __name__ == "__main__":
    main()
