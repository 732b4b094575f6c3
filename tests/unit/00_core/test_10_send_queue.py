import threading

from ses_dispatcher.send_queue import SendQueue


def test_peek_keeps_head_until_dequeue():
    queue = SendQueue()
    queue.enqueue("first")
    queue.enqueue("second")

    assert queue.peek() == "first"
    assert queue.peek() == "first"
    assert len(queue) == 2

    assert queue.dequeue() == "first"
    assert queue.peek() == "second"


def test_empty_queue_returns_none():
    queue = SendQueue()
    assert queue.is_empty()
    assert queue.peek() is None
    assert queue.dequeue() is None
    assert len(queue) == 0


def test_concurrent_producers_keep_per_producer_order():
    queue = SendQueue()
    per_thread = 500

    def produce(n):
        for i in range(per_thread):
            queue.enqueue((n, i))

    threads = [threading.Thread(target=produce, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(queue) == 4 * per_thread
    drained = []
    while not queue.is_empty():
        drained.append(queue.dequeue())

    for n in range(4):
        assert [i for producer, i in drained if producer == n] == list(range(per_thread))
