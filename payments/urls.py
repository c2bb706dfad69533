from django.urls import path
from . import views

urlpatterns = [
    path('create/', views.create_payment, name='create-payment'),
    path('callback/', views.payment_callback, name='payment-callback'),
    path('status/', views.payment_status, name='payment-status'),
]
