"""
Chat URL routing.
"""
from django.urls import path

from apps.chat.views import chat

urlpatterns = [
    path('chat', chat, name='chat'),
]
