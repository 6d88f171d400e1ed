import json
import pytest
from unittest.mock import AsyncMock, MagicMock
from botocore.exceptions import ClientError
from ingestion.scheduler import QueuePoller

QUEUE_URL = "https://sqs.us-east-1.amazonaws.com/123456789012/catalog-ingestion"


def sqs_message(message_id: str, key: str) -> dict:
    return {
        "MessageId": message_id,
        "ReceiptHandle": f"receipt-{message_id}",
        "Body": json.dumps({"bucket": "uploads", "key": key}),
    }


@pytest.fixture
def runner():
    runner = AsyncMock()
    runner.handle_event = AsyncMock(return_value={"results": [{"status": "completed"}]})
    return runner


def test_poller_requires_queue_url(runner):
    with pytest.raises(ValueError):
        QueuePoller(queue_url="", sqs_client=MagicMock(), runner=runner)


@pytest.mark.asyncio
async def test_poll_processes_then_deletes_each_message(runner):
    sqs = MagicMock()
    sqs.receive_message.return_value = {
        "Messages": [sqs_message("m1", "1/7/a.csv"), sqs_message("m2", "2/8/b.csv")]
    }
    poller = QueuePoller(queue_url=QUEUE_URL, sqs_client=sqs, runner=runner)

    processed = await poller.poll_once()

    assert processed == 2
    events = [c.args[0] for c in runner.handle_event.await_args_list]
    assert [e["Records"][0]["messageId"] for e in events] == ["m1", "m2"]
    assert sqs.delete_message.call_args_list[0].kwargs == {
        "QueueUrl": QUEUE_URL, "ReceiptHandle": "receipt-m1"
    }
    assert sqs.delete_message.call_count == 2


@pytest.mark.asyncio
async def test_empty_receive(runner):
    sqs = MagicMock()
    sqs.receive_message.return_value = {}
    poller = QueuePoller(queue_url=QUEUE_URL, sqs_client=sqs, runner=runner)

    assert await poller.poll_once() == 0
    runner.handle_event.assert_not_awaited()


@pytest.mark.asyncio
async def test_delete_failure_does_not_stop_polling(runner):
    sqs = MagicMock()
    sqs.receive_message.return_value = {"Messages": [sqs_message("m1", "1/7/a.csv"), sqs_message("m2", "1/7/b.csv")]}
    sqs.delete_message.side_effect = [
        ClientError({"Error": {"Code": "ReceiptHandleIsInvalid"}}, "DeleteMessage"),
        {},
    ]
    poller = QueuePoller(queue_url=QUEUE_URL, sqs_client=sqs, runner=runner)

    assert await poller.poll_once() == 2
    assert runner.handle_event.await_count == 2


@pytest.mark.asyncio
async def test_poll_job_logs_receive_errors(runner, caplog):
    sqs = MagicMock()
    sqs.receive_message.side_effect = ClientError({"Error": {"Code": "AccessDenied"}}, "ReceiveMessage")
    poller = QueuePoller(queue_url=QUEUE_URL, sqs_client=sqs, runner=runner)

    await poller.run_poll_job()

    assert "Queue poll failed" in caplog.text


@pytest.mark.asyncio
async def test_start_and_close(runner):
    poller = QueuePoller(queue_url=QUEUE_URL, sqs_client=MagicMock(), runner=runner, interval_seconds=5)

    poller.start()
    job = poller.scheduler.get_job("ingestion_queue_poll")
    assert job is not None
    assert job.trigger.interval.total_seconds() == 5

    await poller.close()
    assert not poller.scheduler.running
