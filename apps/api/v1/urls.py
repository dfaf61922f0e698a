# apps/api/v1/urls.py
"""
URL routing for API v1.

All API endpoints are mounted under /api/v1/
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import (
    TokenObtainPairView,
    TokenRefreshView,
    TokenVerifyView,
)

from .views.banking import BankAccountViewSet, TransactionViewSet
from .views.dashboard import DashboardViewSet
from .views.invoicing import InvoiceViewSet
from .views.parties import CustomerViewSet, VendorViewSet
from .views.payments import PaymentViewSet

# Create router and register viewsets
router = DefaultRouter()

# Parties
router.register(r'customers', CustomerViewSet, basename='customer')
router.register(r'vendors', VendorViewSet, basename='vendor')

# Invoicing & payments
router.register(r'invoices', InvoiceViewSet, basename='invoice')
router.register(r'payments', PaymentViewSet, basename='payment')

# Banking
router.register(r'bank-accounts', BankAccountViewSet, basename='bank-account')
router.register(r'transactions', TransactionViewSet, basename='transaction')

# Dashboard
router.register(r'dashboard', DashboardViewSet, basename='dashboard')

urlpatterns = [
    # JWT Authentication
    path('auth/token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('auth/token/verify/', TokenVerifyView.as_view(), name='token_verify'),

    # Router URLs
    path('', include(router.urls)),
]
