"""
Chat URL routing.
"""
from django.urls import path

from apps.chat.views import ChatView, HistoryView, ClearHistoryView, ExportHistoryView

urlpatterns = [
    path('chat', ChatView.as_view(), name='chat'),
    path('chat/history', HistoryView.as_view(), name='chat-history'),
    path('chat/history/clear', ClearHistoryView.as_view(), name='chat-history-clear'),
    path('chat/history/export', ExportHistoryView.as_view(), name='chat-history-export'),
]
