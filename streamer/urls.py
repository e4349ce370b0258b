from django.urls import path

from streamer import views

app_name = 'streamer'

urlpatterns = [
    # Connection profiles
    path('profiles/', views.profile_collection, name='profile_collection'),
    path('profiles/<str:profile_id>/', views.profile_detail, name='profile_detail'),

    # Readiness
    path('connections/validate/', views.validate_connection, name='validate_connection'),
    path('connections/fix/', views.fix_connection, name='fix_connection'),

    # Live CDC stream (server-sent events)
    path('stream/<str:topic_prefix>/', views.stream_events, name='stream_events'),

    # Infrastructure
    path('infrastructure/status/', views.infrastructure_status, name='infrastructure_status'),
]
