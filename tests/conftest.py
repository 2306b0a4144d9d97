"""
Pytest configuration and fixtures
"""
import pytest
from django.contrib.auth import get_user_model
from django.test import Client

User = get_user_model()


@pytest.fixture
def test_user(db):
    """Create a test user"""
    user, _ = User.objects.get_or_create(
        username='testuser',
        defaults={
            'email': 'test@example.com',
            'first_name': 'Test',
            'last_name': 'User',
        }
    )
    user.set_password('testpass123')
    user.save()
    return user


@pytest.fixture
def other_user(db):
    """A second user who does not own the test user's buyers"""
    user, _ = User.objects.get_or_create(
        username='otheruser',
        defaults={
            'email': 'other@example.com',
        }
    )
    user.set_password('otherpass123')
    user.save()
    return user


@pytest.fixture
def authenticated_client(test_user):
    """Create an authenticated Django test client"""
    client = Client()
    client.force_login(test_user)
    return client


@pytest.fixture
def other_client(other_user):
    client = Client()
    client.force_login(other_user)
    return client


@pytest.fixture
def api_client(test_user):
    """Create an API client that sends a JWT bearer token"""
    from authentication.jwt_auth import create_access_token

    token = create_access_token(test_user)
    client = Client(HTTP_AUTHORIZATION=f'Bearer {token}')
    client.token = token
    return client


@pytest.fixture
def sample_buyer_payload():
    """Valid create payload in API (camelCase) form"""
    return {
        'fullName': 'Aarav Sharma',
        'email': 'aarav@example.com',
        'phone': '9876543210',
        'city': 'Chandigarh',
        'propertyType': 'Apartment',
        'bhk': '2',
        'purpose': 'Buy',
        'budgetMin': 5000000,
        'budgetMax': 7500000,
        'timeline': '0-3m',
        'source': 'Website',
        'notes': 'Prefers a high floor',
        'tags': ['urgent', 'hot'],
    }


@pytest.fixture
def create_buyer(test_user, sample_buyer_payload):
    """Factory creating buyers through the service layer (history included)"""
    from buyers.services import create_buyer as create
    from buyers.validation import validate_buyer

    def _create(owner=None, **overrides):
        payload = {**sample_buyer_payload, **overrides}
        result = validate_buyer(payload, "create")
        assert result.ok, result.errors
        return create(owner or test_user, result.value)

    return _create


CSV_HEADER = (
    "fullName,email,phone,city,propertyType,bhk,purpose,budgetMin,budgetMax,"
    "timeline,source,notes,tags,status"
)


@pytest.fixture
def csv_header():
    return CSV_HEADER


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Reset the rate limiter instance before each test"""
    from services import rate_limit
    rate_limit._rate_limiter_instance = None
    yield
    rate_limit._rate_limiter_instance = None
