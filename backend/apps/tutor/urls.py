"""
Session URL routes.
"""
from django.urls import path

from . import views

urlpatterns = [
    path('session', views.session, name='session'),
    path('session/clear', views.clear_session, name='session-clear'),
]
