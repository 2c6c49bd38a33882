from django.urls import path

from .views import (
    ChangeRequestListCreateView,
    CustomerLoginView,
    CustomerRegistrationView,
    EMIPaymentView,
    MobileLoginView,
    MobileLogoutView,
    MobileProfileView,
    RequestDecisionView,
    VerifyOtpView,
)

urlpatterns = [
    path("requests/", ChangeRequestListCreateView.as_view(), name="requests"),
    path("requests/<int:pk>/decision/", RequestDecisionView.as_view(), name="request-decision"),
    path("customers/", CustomerRegistrationView.as_view(), name="register-customer"),
    path("loans/<int:loan_id>/emi-payments/", EMIPaymentView.as_view(), name="emi-payments"),
    path("auth/customer/login/", CustomerLoginView.as_view(), name="customer-login"),
    path("auth/customer/verify-otp/", VerifyOtpView.as_view(), name="verify-otp"),
    path("mobile/auth/login/", MobileLoginView.as_view(), name="mobile-login"),
    path("mobile/auth/logout/", MobileLogoutView.as_view(), name="mobile-logout"),
    path("mobile/profile/", MobileProfileView.as_view(), name="mobile-profile"),
]
