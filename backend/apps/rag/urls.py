"""
RAG URL routing.
"""
from django.urls import path

from apps.rag.views import ChatView, ModelsView

urlpatterns = [
    path('chat', ChatView.as_view(), name='rag-chat'),
    path('models', ModelsView.as_view(), name='rag-models'),
]
