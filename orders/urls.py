from django.urls import path
from . import views

urlpatterns = [
    path('cleanup/expired-orders/', views.cleanup_expired_orders, name='cleanup-expired-orders'),
    path('order/by-number/', views.get_order_by_number, name='order-by-number'),
]
