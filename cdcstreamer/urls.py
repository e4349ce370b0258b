from django.urls import include, path

from streamer.views import metrics_view

urlpatterns = [
    path('api/', include('streamer.urls')),
    path('metrics', metrics_view, name='metrics'),
]
