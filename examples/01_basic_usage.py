"""
Basic fetcher usage examples

Demonstrates GET, POST, PUT, DELETE requests with request options.
"""

from fetcher import (
    Client,
    with_header,
    with_json_payload,
    with_param,
)


def basic_get_request():
    """Simple GET request."""
    print("\n=== Basic GET Request ===")

    with Client(base_url="https://jsonplaceholder.typicode.com") as client:
        with client.get("/posts/1") as resp:
            print(f"Status: {resp.status}")
            print(f"Data: {resp.decode()}")


def post_with_json():
    """POST request with JSON body."""
    print("\n=== POST with JSON ===")

    data = {
        "title": "My Post",
        "body": "This is the content",
        "userId": 1
    }

    with Client(base_url="https://jsonplaceholder.typicode.com") as client:
        with client.post("/posts", with_json_payload(data)) as resp:
            print(f"Status: {resp.status_code}")
            print(f"Created: {resp.decode()}")


def put_and_delete():
    """PUT then DELETE."""
    print("\n=== PUT / DELETE ===")

    with Client(base_url="https://jsonplaceholder.typicode.com") as client:
        with client.put("/posts/1", with_json_payload({"id": 1, "title": "Updated"})) as resp:
            print(f"PUT status: {resp.status_code}")
        with client.delete("/posts/1") as resp:
            print(f"DELETE status: {resp.status_code}")


def with_query_params():
    """GET request with query parameters."""
    print("\n=== GET with Query Params ===")

    with Client(base_url="https://jsonplaceholder.typicode.com") as client:
        with client.get("/posts", with_param("userId", 1)) as resp:
            posts = resp.decode()
            print(f"Found {len(posts)} posts for user 1")


def with_custom_headers():
    """Client-wide and per-request headers."""
    print("\n=== Custom Headers ===")

    with Client(
        base_url="https://httpbin.org",
        headers={"User-Agent": "fetcher-example"},
        request_options=[with_header("X-Client", "examples")],
    ) as client:
        with client.get("/headers", with_header("X-Request", "1")) as resp:
            print(f"Headers sent: {resp.decode()['headers']}")


if __name__ == "__main__":
    print("=" * 50)
    print("fetcher - Basic Usage Examples")
    print("=" * 50)

    try:
        basic_get_request()
        post_with_json()
        put_and_delete()
        with_query_params()
        with_custom_headers()

        print("\n" + "=" * 50)
        print("All examples completed successfully!")
        print("=" * 50)

    except Exception as e:
        print(f"\nError: {e}")
