"""
Document extraction URL routes.
"""
from django.urls import path

from . import views

urlpatterns = [
    path('index-docs', views.index_docs, name='index-docs'),
]
