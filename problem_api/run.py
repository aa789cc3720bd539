import uvicorn

from problem_api.config.logging_setup import setup_logging
from problem_api.config.settings import get_settings

# Configure logging from the YAML file before uvicorn starts
setup_logging()


def main():
    """Start the problem service API."""
    settings = get_settings()
    host = settings.problem_service_host
    port = settings.problem_service_port

    print(f"Starting problem service on http://{host}:{port}")
    print("Press CTRL+C to quit.")

    uvicorn.run(
        "problem_api.main:app",
        host=host,
        port=port,
        log_config=None  # Use the configuration initialized above
    )


if __name__ == "__main__":
    main()
