import asyncio

from blossom.packages.background import BackgroundTaskQueue, LazyPackageTask


class Task:
    def __init__(self, name, log, fail=False):
        self.name = name
        self.log = log
        self.fail = fail

    def run(self):
        self.log.append(self.name)
        if self.fail:
            raise RuntimeError(self.name)


async def test_drain_runs_in_order_and_survives_failures():
    log: list[str] = []
    queue = BackgroundTaskQueue()
    queue.push(Task("a", log))
    queue.push(Task("b", log, fail=True))
    queue.push(Task("c", log))

    assert log == []
    assert await queue.drain() == 3
    assert log == ["a", "b", "c"]
    assert len(queue) == 0


async def test_started_queue_picks_up_new_work():
    log: list[str] = []
    queue = BackgroundTaskQueue()
    queue.start()
    queue.push(Task("late", log))

    for _ in range(5):
        await asyncio.sleep(0)

    assert log == ["late"]
    queue.stop()
    assert queue.isRunning is False


def test_app_ready_queues_only_lazy_packages(make_manager, events, emit_source):
    manager = make_manager({
        "core": {"type": "core", "source": emit_source("core")},
        "extras": {"type": "lazy", "dependencies": ["core"], "source": emit_source("extras")},
        "reports": {"type": "lazy", "source": emit_source("reports")},
        "admin": {"source": emit_source("admin")},
    })
    queue = BackgroundTaskQueue()

    assert manager.onAppReady(queue) == 2
    assert events == []

    queue.runNext()
    assert events == ["core", "extras"]
    queue.runNext()
    assert events == ["core", "extras", "reports"]
    assert queue.runNext() is False


def test_lazy_task_loads_through_manager(make_manager, emit_source, events):
    manager = make_manager({"lazy": {"type": "lazy", "source": emit_source("lazy")}})
    LazyPackageTask(lazyPackageName="lazy", manager=manager).run()
    assert events == ["lazy"]
