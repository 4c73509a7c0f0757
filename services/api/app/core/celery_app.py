# services/api/app/core/celery_app.py

from pathlib import Path
from celery import Celery
from kombu import Queue

from .config import settings

# -----------------------------------------------------------------------------
# 辅助函数: 自动发现任务模块 (Auto-discover tasks)
# -----------------------------------------------------------------------------
def find_task_modules(base_path="workers/tasks"):
    """
    扫描 workers/tasks 下的模块，转换为 Celery 可识别的导入路径。
    例如: .../workers/tasks/vault_tasks.py -> workers.tasks.vault_tasks
    """
    # services/api/app/core/celery_app.py -> 项目根目录
    root_dir = Path(__file__).resolve().parents[4]
    tasks_dir = root_dir / base_path

    module_paths = []
    for path in sorted(tasks_dir.rglob("*.py")):
        if path.name == "__init__.py":
            continue
        relative_path = path.relative_to(root_dir)
        module_paths.append(".".join(relative_path.with_suffix("").parts))
    return module_paths

# -----------------------------------------------------------------------------
# 1. 初始化Celery应用
# -----------------------------------------------------------------------------
celery_app = Celery(
    "shot_studio",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=find_task_modules(),
)

# -----------------------------------------------------------------------------
# 2. 任务队列 (Task Queues)
# -----------------------------------------------------------------------------
# vault_queue：转存视频、同步快照这类纯 I/O 的任务，与默认队列隔离
celery_app.conf.task_queues = (
    Queue("default", routing_key="task.default"),
    Queue("vault_queue", routing_key="task.vault"),
)

celery_app.conf.task_routes = {
    'vault.*': {'queue': 'vault_queue'},
}

# -----------------------------------------------------------------------------
# 3. Celery核心配置
# -----------------------------------------------------------------------------
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.APP_TIMEZONE,
    enable_utc=True,
    worker_prefetch_multiplier=1,
    result_expires=86400,
    task_track_started=True,
    task_acks_late=True,
)
