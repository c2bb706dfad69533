from django.urls import include, path

urlpatterns = [
    path('api/payment/', include('payments.urls')),
    path('api/', include('orders.urls')),
]
