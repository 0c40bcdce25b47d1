"""Celery configuration for the XML import worker."""

from kombu import Exchange, Queue

# ==============================================================================
# BROKER & BACKEND CONFIGURATION
# ==============================================================================

broker_connection_retry_on_startup = True
broker_connection_retry = True
broker_connection_max_retries = 10

broker_pool_limit = 10
broker_heartbeat = 30

result_expires = 3600  # Results expire after 1 hour

# ==============================================================================
# TASK EXECUTION SETTINGS
# ==============================================================================

# ACK after the job reached a terminal state; a lost worker requeues the task
task_acks_late = True
task_reject_on_worker_lost = True
worker_prefetch_multiplier = 1

task_track_started = True
task_send_sent_event = True

# Serialization
task_serializer = "json"
accept_content = ["json"]  # Only accept JSON, prevent pickle attacks
result_serializer = "json"
timezone = "UTC"
enable_utc = True

# Item failures are recorded on the job; the task itself is never retried
task_max_retries = 0

# ==============================================================================
# QUEUE DEFINITIONS
# ==============================================================================

default_exchange = Exchange("default", type="direct", durable=True)
import_exchange = Exchange("import_tasks", type="direct", durable=True)

task_queues = (
    Queue(
        "default",
        exchange=default_exchange,
        routing_key="default",
        durable=True,
    ),
    # Dedicated queue for feed imports so long jobs never block other work
    Queue(
        "import_queue",
        exchange=import_exchange,
        routing_key="import.xml",
        queue_arguments={
            "x-message-ttl": 7200000,  # 2 hours TTL for queued imports
        },
        durable=True,
    ),
)

task_default_queue = "default"
task_default_exchange = "default"
task_default_routing_key = "default"

# ==============================================================================
# TASK ROUTING
# ==============================================================================

task_routes = {
    "catalog_import.tasks.import_tasks.process_xml_import": {
        "queue": "import_queue",
        "routing_key": "import.xml",
    },
}

# ==============================================================================
# WORKER CONFIGURATION
# ==============================================================================

worker_concurrency = 4
worker_max_tasks_per_child = 100
worker_send_task_events = True
worker_log_format = "[%(asctime)s: %(levelname)s/%(processName)s] %(message)s"
worker_task_log_format = "[%(asctime)s: %(levelname)s/%(processName)s][%(task_name)s(%(task_id)s)] %(message)s"

task_default_delivery_mode = 2  # 2 = persistent, 1 = transient

# ==============================================================================
# TASK ANNOTATIONS (task-specific overrides)
# ==============================================================================

task_annotations = {
    "catalog_import.tasks.import_tasks.process_xml_import": {
        "time_limit": 3600,  # Hard time limit: 1 hour
        "soft_time_limit": 3300,
    },
}
