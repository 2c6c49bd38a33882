from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from . import lifecycle, payments, sessions, workflow
from .authentication import CustomerTokenAuthentication
from .models import Loan
from .serializers import (
    ChangeRequestSerializer,
    CustomerLoginSerializer,
    CustomerProfileSerializer,
    DecisionSerializer,
    EMIPaymentInputSerializer,
    EMIPaymentSerializer,
    LoanSummarySerializer,
    LogoutSerializer,
    MobileLoginSerializer,
    RegisterCustomerSerializer,
    RequesterSerializer,
    VerifyOtpSerializer,
)


def _requester(data) -> workflow.Requester:
    serializer = RequesterSerializer(data=data)
    serializer.is_valid(raise_exception=True)
    return workflow.Requester(
        name=serializer.validated_data["createdBy"],
        role=serializer.validated_data["createdByRole"],
    )


class ChangeRequestListCreateView(APIView):
    def get(self, request):
        requests = workflow.list_requests(
            status=request.query_params.get("status") or None,
            request_type=request.query_params.get("type") or None,
        )
        return Response({"success": True, "data": ChangeRequestSerializer(requests, many=True).data})

    def post(self, request):
        requester = _requester(request.data)
        change = workflow.create_request(request.data.get("type"), request.data, requester)
        return Response(
            {"success": True, "message": "Request submitted for approval", "requestId": change.pk},
            status=status.HTTP_201_CREATED,
        )


class RequestDecisionView(APIView):
    def post(self, request, pk: int):
        serializer = DecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = workflow.transition(pk, data["action"], reviewer=data["processedBy"], reason=data["reason"])
        return Response(
            {
                "success": True,
                "message": result.outcome.message,
                "outcome": result.outcome.kind,
                "status": result.request.status,
                "request": ChangeRequestSerializer(result.request).data,
            }
        )


class CustomerRegistrationView(APIView):
    def post(self, request):
        serializer = RegisterCustomerSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        customer, change = workflow.register_customer(serializer.validated_data, _requester(request.data))
        return Response(
            {
                "success": True,
                "message": "Customer registered and sent for approval",
                "customerId": customer.pk,
                "requestId": change.pk,
            },
            status=status.HTTP_201_CREATED,
        )


class EMIPaymentView(APIView):
    def post(self, request, loan_id: int):
        serializer = EMIPaymentInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        payment = payments.record_emi_payment(
            loan_id,
            data["amount"],
            payment_date=data.get("paymentDate"),
            collected_by=data["collectedBy"],
            payment_method=data["paymentMethod"],
            notes=data["notes"],
        )
        return Response(
            {
                "success": True,
                "payment": EMIPaymentSerializer(payment).data,
                "loan": LoanSummarySerializer(payment.loan).data,
            },
            status=status.HTTP_201_CREATED,
        )


class CustomerLoginView(APIView):
    def post(self, request):
        serializer = CustomerLoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        challenge = sessions.begin_login(data["loginId"], data["password"])
        message = "OTP sent to your registered phone" if challenge.otp_required else "Login successful"
        return Response(
            {
                "success": True,
                "message": message,
                "otpRequired": challenge.otp_required,
                "customerId": challenge.customer.pk,
            }
        )


class VerifyOtpView(APIView):
    def post(self, request):
        serializer = VerifyOtpSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        customer = sessions.verify_otp(serializer.validated_data["loginId"], serializer.validated_data["otp"])
        return Response({"success": True, "message": "OTP verified successfully", "customerId": customer.pk})


class MobileLoginView(APIView):
    def post(self, request):
        serializer = MobileLoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        session = sessions.login(data["loginId"], data["password"], data["deviceId"])
        return Response(
            {
                "success": True,
                "token": session.token,
                "customer": CustomerProfileSerializer(session.customer).data,
            }
        )


class MobileLogoutView(APIView):
    authentication_classes = [CustomerTokenAuthentication]
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = LogoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        released = sessions.logout(request.user, serializer.validated_data["deviceId"])
        return Response({"success": True, "message": "Logged out successfully", "released": released})


class MobileProfileView(APIView):
    authentication_classes = [CustomerTokenAuthentication]
    permission_classes = [IsAuthenticated]

    def get(self, request):
        customer = request.user
        loans = [
            loan
            for loan in customer.loans.filter(status=Loan.Status.ACTIVE).order_by("date_applied", "pk")
            if lifecycle.is_outstanding(loan)
        ]
        return Response(
            {
                "success": True,
                "customer": CustomerProfileSerializer(customer).data,
                "loans": LoanSummarySerializer(loans, many=True).data,
            }
        )
