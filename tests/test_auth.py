"""Tests for parent registration, login and token revocation."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from backend.app.db import get_db
from backend.app.main import app


@pytest.fixture()
def auth_client(session_factory):
	def _get_db():
		db = session_factory()
		try:
			yield db
		finally:
			db.close()

	app.dependency_overrides[get_db] = _get_db
	yield TestClient(app)
	app.dependency_overrides.clear()


def _login(client: TestClient, username: str, password: str):
	return client.post("/auth/token", data={"username": username, "password": password})


class TestAuth:
	def test_register_login_me_logout(self, auth_client) -> None:
		assert auth_client.post("/auth/register", json={"username": "maria", "password": "correct-horse"}).status_code == 201
		resp = _login(auth_client, "maria", "correct-horse")
		assert resp.status_code == 200
		headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}

		assert auth_client.get("/auth/me", headers=headers).json() == {"username": "maria"}
		assert auth_client.post("/children", json={"name": "Emma"}, headers=headers).status_code == 201

		assert auth_client.post("/auth/logout", headers=headers).status_code == 200
		assert auth_client.get("/auth/me", headers=headers).status_code == 401

	def test_duplicate_and_weak_registration(self, auth_client) -> None:
		assert auth_client.post("/auth/register", json={"username": "maria", "password": "correct-horse"}).status_code == 201
		assert auth_client.post("/auth/register", json={"username": "maria", "password": "another-one"}).status_code == 409
		assert auth_client.post("/auth/register", json={"username": "leo", "password": "short"}).status_code == 400

	def test_wrong_password(self, auth_client) -> None:
		auth_client.post("/auth/register", json={"username": "maria", "password": "correct-horse"})
		assert _login(auth_client, "maria", "wrong-horse").status_code == 401
		assert _login(auth_client, "nobody", "correct-horse").status_code == 401

	def test_endpoints_require_token(self, auth_client) -> None:
		assert auth_client.get("/children").status_code == 401
		assert auth_client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401
