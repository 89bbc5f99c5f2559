"""HTTP client layer for promptwire.

Provides the completion client and the resilience machinery underneath it:

Classes:
    :class:`CompletionClient` -- blocking client backed by :class:`httpx.Client`.
    :class:`Dispatcher` -- retry / backoff / cancellation attempt loop.
    :class:`StreamReader` -- typed reader for server-sent-event replies.
    :class:`CancelToken` -- cooperative cancellation with an optional deadline.
    :class:`BackoffPolicy` -- jittered exponential delay schedule.

Example::

    from promptwire.client import CompletionClient

    with CompletionClient(config) as client:
        with client.create_chat_completion_stream(request) as stream:
            for chunk in stream:
                print(chunk.text(), end="")
"""

from promptwire.client.backoff import BackoffPolicy
from promptwire.client.cancel import CancelToken
from promptwire.client.classifier import classify_error_response
from promptwire.client.dispatcher import Dispatcher
from promptwire.client.stream import StreamReader
from promptwire.client.sync_client import CompletionClient

__all__ = [
    "BackoffPolicy",
    "CancelToken",
    "CompletionClient",
    "Dispatcher",
    "StreamReader",
    "classify_error_response",
]
