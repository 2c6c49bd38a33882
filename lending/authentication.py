from rest_framework.authentication import BaseAuthentication, get_authorization_header

from .exceptions import AuthError
from .models import Customer
from .tokens import decode_token


class CustomerTokenAuthentication(BaseAuthentication):
    """``Authorization: Bearer <jwt>`` for the customer mobile app.

    A token only authenticates while its customer is active and still bound
    to a device, so logging out revokes every token issued before it.
    """

    keyword = "Bearer"

    def authenticate(self, request):
        parts = get_authorization_header(request).split()
        if not parts or parts[0].lower() != self.keyword.lower().encode():
            return None
        if len(parts) != 2:
            raise AuthError("Invalid authorization header")

        try:
            token = parts[1].decode()
        except UnicodeError:
            raise AuthError("Invalid token")

        claims = decode_token(token)
        customer = Customer.objects.filter(pk=claims["customerId"]).first()
        if customer is None or not customer.can_login or customer.active_device_id is None:
            raise AuthError("Session is no longer valid")
        return customer, claims

    def authenticate_header(self, request):
        return self.keyword
