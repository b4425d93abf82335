"""
URL configuration for the docs app.
"""
from django.urls import path
from . import views

app_name = 'docs'

urlpatterns = [
    path('', views.list_documents, name='list'),
    path('<str:document_id>', views.get_document, name='detail'),
    path('<str:document_id>/delete', views.delete_document, name='delete'),
    path('<str:document_id>/pages/<int:page_number>', views.get_page, name='page'),
]
