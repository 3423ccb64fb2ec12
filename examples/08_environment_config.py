"""
Environment Configuration Examples.

Demonstrates loading configuration from .env files and FETCHER_* variables.
"""

import os
import tempfile

from fetcher import Client, load_from_env


def load_from_env_file():
    """Load from a .env file."""
    print("\n" + "=" * 60)
    print("Load from .env")
    print("=" * 60 + "\n")

    with tempfile.TemporaryDirectory() as tmp:
        env_file = os.path.join(tmp, ".env")
        with open(env_file, "w") as f:
            f.write("FETCHER_BASE_URL=https://httpbin.org\n")
            f.write("FETCHER_MAX_ATTEMPTS=3\n")
            f.write("FETCHER_BACKOFF=linear\n")
            f.write("FETCHER_BACKOFF_INTERVAL=0.5\n")
            f.write("FETCHER_LOG_ENABLED=true\n")
            f.write("FETCHER_LOG_FORMAT=colored\n")

        config = load_from_env(env_file=env_file)

    print(f"base_url:     {config.base_url}")
    print(f"max_attempts: {config.retry.max_attempts}")
    print(f"backoff:      {config.retry.backoff}")

    with Client(config=config) as client:
        try:
            with client.get("/get") as resp:
                print(f"Response status: {resp.status_code}\n")
        except Exception as e:
            print(f"Request failed (expected in some environments): {type(e).__name__}\n")


def overrides():
    """Explicit overrides beat the environment."""
    print("\n" + "=" * 60)
    print("Overrides")
    print("=" * 60 + "\n")

    os.environ["FETCHER_MAX_ATTEMPTS"] = "2"
    try:
        config = load_from_env(max_attempts=6, rate_limit_rate=5, rate_limit_duration=1)
        print(f"max_attempts: {config.retry.max_attempts}")
        print(f"rate limit:   {config.rate_limit}")
    finally:
        del os.environ["FETCHER_MAX_ATTEMPTS"]


if __name__ == "__main__":
    load_from_env_file()
    overrides()
