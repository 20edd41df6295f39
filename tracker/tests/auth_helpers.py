"""
Session helpers for route tests.
"""

from fastapi.testclient import TestClient

JSON = {"Accept": "application/json"}


def login(client: TestClient, username: str, password: str):
    """
    Log in through the form endpoint.

    The client keeps the session cookie for subsequent requests.
    """
    return client.post(
        "/login",
        data={"username": username, "password": password},
        follow_redirects=False,
    )


def login_superuser(client: TestClient):
    response = login(client, "admin", "admin")
    assert response.status_code == 303
    return response
