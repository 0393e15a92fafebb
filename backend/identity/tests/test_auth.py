from django.contrib.auth import get_user_model
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

User = get_user_model()


class TokenAuthTest(APITestCase):
    """
    Test suite for JWT login and the profile endpoint.
    """

    def setUp(self):
        """
        Create a user to log in with.
        """
        self.user = User.objects.create_user(email="owner@example.com", full_name="Shop Owner",
                                             password="some-strong-password-123")
        self.token_url = reverse("token_obtain_pair")
        self.me_url = reverse("auth_me")

    def test_login_returns_token_pair(self):
        """
        Ensure valid credentials yield an access and a refresh token.
        """
        response = self.client.post(self.token_url, {"email": "owner@example.com",
                                                     "password": "some-strong-password-123"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn("access", response.data)
        self.assertIn("refresh", response.data)

    def test_login_wrong_password(self):
        """
        Ensure a bad password is rejected with the error envelope.
        """
        response = self.client.post(self.token_url, {"email": "owner@example.com", "password": "nope"},
                                    format="json")

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.json()["error"]["code"], "UNAUTHORIZED")

    def test_me_with_bearer_token(self):
        """
        Ensure the access token authenticates the profile endpoint.
        """
        tokens = self.client.post(self.token_url, {"email": "owner@example.com",
                                                   "password": "some-strong-password-123"}, format="json").data
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
        response = self.client.get(self.me_url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()["data"]["email"], "owner@example.com")

    def test_me_update_cannot_change_email(self):
        """
        Ensure profile edits leave the login email alone.
        """
        self.client.force_authenticate(self.user)
        response = self.client.patch(self.me_url, {"full_name": "Renamed", "email": "x@example.com"},
                                     format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.full_name, "Renamed")
        self.assertEqual(self.user.email, "owner@example.com")

    def test_me_requires_authentication(self):
        response = self.client.get(self.me_url)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class WhoAmITest(APITestCase):
    """
    The whoami probe echoes the resolved tenant context.
    """

    def test_anonymous_with_store_header(self):
        response = self.client.get(reverse("core-whoami"), HTTP_X_STORE_ID="store-123")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        body = response.json()["data"]
        self.assertFalse(body["isAuthenticated"])
        self.assertEqual(body["storeId"], "store-123")
        self.assertTrue(response.has_header("X-Request-ID"))

    def test_super_admin_flag(self):
        admin = User.objects.create_superuser(email="root@example.com", password="pw-123456", full_name="Root")
        self.client.force_authenticate(admin)
        response = self.client.get(reverse("core-whoami"))

        self.assertTrue(response.json()["data"]["isSuperAdmin"])
        self.assertEqual(response.json()["data"]["userId"], str(admin.pk))
