from django.urls import path

from . import views

urlpatterns = [
    path("brokers/available/", views.AvailableBrokersView.as_view(), name="brokers-available"),
    path("brokers/link/", views.LinkBrokerView.as_view(), name="brokers-link"),
    path("brokers/linked/", views.LinkedBrokersView.as_view(), name="brokers-linked"),
    path("brokers/<uuid:account_id>/positions/", views.BrokerPositionsView.as_view(), name="broker-positions"),
    path("brokers/<uuid:account_id>/positions/close/", views.ClosePositionView.as_view(), name="broker-positions-close"),
    path("orders/", views.OrdersView.as_view(), name="orders"),
    path("orders/place/", views.PlaceOrderView.as_view(), name="orders-place"),
    path("orders/schedule/", views.ScheduleOrderView.as_view(), name="orders-schedule"),
    path("orders/schedules/<uuid:pk>/cancel/", views.CancelScheduleView.as_view(), name="orders-schedule-cancel"),
    path("orders/<uuid:pk>/", views.OrderDetailView.as_view(), name="order-detail"),
    path("marketdata/history/<str:symbol>/", views.HistoryView.as_view(), name="marketdata-history"),
]
