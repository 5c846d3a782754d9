from tunedeck.core.interfaces.job_service import JobServicePort
from tunedeck.core.models.requests import QueryRequest, QueryResponse
from tunedeck.core.settings import logger


class QueryDispatcher:
    """Single-shot inference requests.

    One call, one response, returned as the service sent it. No retries and
    no polling: a query never touches the registry or the poller.
    """

    def __init__(self, service: JobServicePort):
        self._service = service

    async def dispatch(self, request: QueryRequest) -> QueryResponse:
        logger.debug(
            f"[query:send] model_id={request.model_id} input_chars={len(request.input)}"
        )
        response = await self._service.query(request)
        logger.debug(f"[query:send] response received model_id={request.model_id}")
        return response
