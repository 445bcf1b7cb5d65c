"""CLI entry point for OmniChat."""
import uvicorn


def main():
    """Launch the OmniChat server."""
    from omnichat.config import load_config
    cfg = load_config()

    uvicorn.run(
        "omnichat.app:create_app",
        factory=True,
        host=cfg.app.host,
        port=cfg.app.port,
        reload=cfg.app.env == "development",
        log_level=cfg.app.log_level.lower(),
        timeout_keep_alive=30,
    )


if __name__ == "__main__":
    main()
