"""
URL configuration for the docs app.
"""
from django.urls import path
from . import views

app_name = 'docs'

urlpatterns = [
    path('documents', views.add_document, name='add'),
    path('bulk/documents', views.add_documents_bulk, name='bulk-add'),
]
