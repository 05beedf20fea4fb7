"""
RAG API views.

Provides endpoints for:
- Chat (full RAG pipeline, answer streamed as server-sent events)
- Model catalog
"""
import json
import logging

from django.http import JsonResponse, StreamingHttpResponse
from django.views import View
from django.views.decorators.csrf import csrf_exempt
from django.utils.decorators import method_decorator

from apps.authn.middleware import auth_required
from apps.authn.audit import audit_chat_query
from apps.rag.catalog import available_models
from apps.rag.config import ProviderConfig
from apps.rag.embeddings import EmbeddingUnavailable, QueryValidationError
from apps.rag.index import IndexBuildError
from apps.rag.llm_client import NoProviderAvailable
from apps.rag.pipeline import ChatRequest, prepare_answer, sse_frames

logger = logging.getLogger(__name__)


@method_decorator(csrf_exempt, name='dispatch')
@method_decorator(auth_required, name='dispatch')
class ChatView(View):
    """
    POST /api/chat

    Answer a question from the supplied documents.

    Request body:
        {
            "message": "What is the refund policy?",
            "history": [{"role": "user", "content": "..."}],
            "model": "gpt-4o-mini",
            "indexedDocs": [
                {"id": "...", "title": "...", "content": "...",
                 "url": "...", "lastModified": "..."}
            ]
        }

    Response (text/event-stream):
        data: {"content": "Refunds are", "sources": ["Policy"]}

        data: {"content": " accepted...", "sources": ["Policy"]}

        data: [DONE]

    A stream that ends without the [DONE] frame failed mid-answer.
    """

    def post(self, request):
        try:
            body = json.loads(request.body)
        except json.JSONDecodeError:
            return JsonResponse({"error": "Invalid JSON"}, status=400)

        try:
            chat_request = ChatRequest.from_dict(body)
        except (QueryValidationError, ValueError) as e:
            return JsonResponse({"error": str(e)}, status=400)

        config = ProviderConfig.from_settings()

        try:
            stream = prepare_answer(chat_request, config)
        except EmbeddingUnavailable as e:
            logger.error(f"Chat rejected: {e}")
            return JsonResponse({"error": str(e)}, status=500)
        except NoProviderAvailable as e:
            logger.error(f"Chat rejected: {e}")
            return JsonResponse({"error": str(e)}, status=500)
        except IndexBuildError as e:
            return JsonResponse({"error": str(e)}, status=400)
        except Exception:
            logger.exception("Chat pipeline error")
            return JsonResponse({"error": "Internal server error"}, status=500)

        # Audit before streaming starts (no question text, only sizes)
        audit_chat_query(
            request,
            model=stream.client.model_name,
            question_length=len(chat_request.message),
            document_count=len(chat_request.documents),
            source_count=len(stream.sources),
        )

        response = StreamingHttpResponse(
            sse_frames(stream),
            content_type='text/event-stream'
        )
        response['Cache-Control'] = 'no-cache'
        response['X-Accel-Buffering'] = 'no'  # Disable nginx buffering
        return response


@method_decorator(csrf_exempt, name='dispatch')
@method_decorator(auth_required, name='dispatch')
class ModelsView(View):
    """
    GET /api/models

    List chat models for every configured provider.

    Response:
        {
            "models": [
                {"id": "gpt-4o", "name": "GPT-4o", "provider": "openai", "available": true}
            ]
        }
    """

    def get(self, request):
        config = ProviderConfig.from_settings()
        models = available_models(config)
        return JsonResponse({"models": [m.to_dict() for m in models]})
