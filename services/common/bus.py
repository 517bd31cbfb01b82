"""
Common — メッセージバスアダプタ (Redis Pub/Sub)

publish(channel, event) と、購読チャネルごとに1本の消費ループを提供する。

注意: Redis Pub/Sub は fire-and-forget 方式。
購読側がダウンしている間に発行されたメッセージは失われ、ACK も再送もない。
順序が保証されるのは同一チャネル・同一発行者の範囲だけ。
そのためハンドラは欠落・重複・チャネル間の順序入れ替わりに耐える必要がある。
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

import redis.asyncio as aioredis
from pydantic import ValidationError
from redis.exceptions import RedisError

from .errors import BusConnectionFailure, CommandResult, ErrorKind
from .events import BusEvent

logger = logging.getLogger(__name__)

Handler = Callable[[BusEvent], Awaitable[CommandResult]]

# 受信エラー後に再試行するまでの待ち時間(秒)
RECEIVE_RETRY_DELAY = 1.0


class MessageBus:
    def __init__(self, redis: aioredis.Redis, url: str = "") -> None:
        self.redis = redis
        self.url = url

    @classmethod
    async def connect(cls, url: str) -> "MessageBus":
        """接続を開き、サーバーが応答することを確認する。"""
        redis = aioredis.from_url(url, decode_responses=True)
        try:
            await redis.ping()
        except RedisError as e:
            await redis.aclose()
            raise BusConnectionFailure(url) from e
        logger.info("Connected to message bus at %s", url)
        return cls(redis, url)

    async def close(self) -> None:
        await self.redis.aclose()
        logger.info("Disconnected from message bus")

    async def publish(self, channel: str, event: BusEvent) -> CommandResult:
        """
        イベントを1件発行する。

        失敗は例外ではなく結果として返す。呼び出し側はすでにローカルの
        状態変更をコミットしており、その変更は取り消さない。
        """
        try:
            await self.redis.publish(channel, event.to_json())
        except RedisError as e:
            logger.error("Publish to %s failed: %s", channel, e)
            return CommandResult.fail(ErrorKind.BUS_UNAVAILABLE, str(e))
        logger.debug("Published to %s: %s", channel, event)
        return CommandResult.ok()

    async def run_subscriber(
        self,
        channel: str,
        model: type[BusEvent],
        handler: Handler,
        shutdown_event: asyncio.Event,
    ) -> None:
        """
        shutdown_event がセットされるまで channel を消費する。

        メッセージは受信順に1件ずつ処理する。shutdown_event がセットされたら
        新しいメッセージは取らず、処理中の1件を終えてから購読を閉じる。
        受信時のデコード失敗や接続エラーではループを止めない。
        """
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(channel)
        logger.info("Subscribed to %s", channel)

        try:
            while not shutdown_event.is_set():
                try:
                    message = await pubsub.get_message(
                        ignore_subscribe_messages=True, timeout=1.0
                    )
                except UnicodeDecodeError as e:
                    # decode_responses=True のため UTF-8 でないペイロードはここで失敗する
                    logger.warning(
                        "Dropping malformed payload on %s (%s): %r",
                        channel,
                        ErrorKind.MALFORMED_PAYLOAD.value,
                        e.object,
                    )
                    continue
                except RedisError:
                    logger.exception(
                        "Receive on %s failed, retrying in %.1fs", channel, RECEIVE_RETRY_DELAY
                    )
                    await asyncio.sleep(RECEIVE_RETRY_DELAY)
                    continue

                if message and message["type"] == "message":
                    await dispatch(channel, model, handler, message["data"])
                else:
                    await asyncio.sleep(0.1)
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
            logger.info("Unsubscribed from %s", channel)


async def dispatch(
    channel: str,
    model: type[BusEvent],
    handler: Handler,
    raw: str | bytes,
) -> CommandResult | None:
    """ペイロードを1件デコードしてハンドラに渡す。

    不正なペイロードもハンドラの例外も、呼び出し側のループは止めない。
    """
    try:
        event = model.model_validate_json(raw)
    except ValidationError as e:
        logger.warning(
            "Dropping malformed payload on %s (%d errors): %r",
            channel,
            e.error_count(),
            raw,
        )
        return CommandResult.fail(ErrorKind.MALFORMED_PAYLOAD, str(e))

    try:
        return await handler(event)
    except Exception:
        logger.exception("Failed to process message on %s", channel)
        return None


def start_subscribers(
    bus: MessageBus,
    routes: dict[str, tuple[type[BusEvent], Handler]],
    shutdown_event: asyncio.Event,
) -> list[asyncio.Task]:
    """チャネルごとに消費タスクを1本ずつ起動する。"""

    def _on_done(task: asyncio.Task) -> None:
        if task.cancelled():
            logger.warning("Subscriber task %s was cancelled", task.get_name())
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Subscriber task %s died: %r", task.get_name(), error, exc_info=error
            )
        elif not shutdown_event.is_set():
            logger.error("Subscriber task %s stopped before shutdown", task.get_name())

    tasks = []
    for channel, (model, handler) in routes.items():
        task = asyncio.create_task(
            bus.run_subscriber(channel, model, handler, shutdown_event),
            name=f"subscriber:{channel}",
        )
        task.add_done_callback(_on_done)
        tasks.append(task)
    return tasks


async def drain(tasks: list[asyncio.Task]) -> None:
    """シャットダウン時にタスクの終了を待ち、失敗していたものを記録する。"""
    results = await asyncio.gather(*tasks, return_exceptions=True)
    for task, result in zip(tasks, results):
        if isinstance(result, BaseException) and not isinstance(result, asyncio.CancelledError):
            logger.error(
                "Task %s ended with error: %r", task.get_name(), result, exc_info=result
            )
