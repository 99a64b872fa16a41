"""
URL routing for order API endpoints.
"""
from django.urls import path
from . import views

app_name = 'orders'

urlpatterns = [
    path('orders/', views.OrderListCreateView.as_view(), name='order-list'),
    path('orders/single/', views.LegacyOrderCreateView.as_view(), name='order-single'),
    path('orders/<int:pk>/', views.OrderDetailView.as_view(), name='order-detail'),
    path('sales/analytics/', views.SalesAnalyticsView.as_view(), name='sales-analytics'),
]
