from django.apps import AppConfig


class BatchingConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.batching"
    label = "batching"

    def ready(self) -> None:
        from modules.batching.conf import get_batching_settings
        from modules.batching.events import (
            BatchCancelled,
            BatchDelivered,
            BatchDriverAssigned,
            BatchInTransit,
            BatchReady,
            BatchWeightReconciled,
        )
        from modules.batching.handlers import (
            batch_cancelled_handler,
            batch_delivered_handler,
            batch_driver_assigned_handler,
            batch_in_transit_handler,
            batch_ready_handler,
            batch_weight_reconciled_handler,
        )
        from shared.infrastructure.bus import event_bus

        # Fail at start-up on an invalid capacity/threshold/lock setup.
        get_batching_settings()

        event_bus.subscribe(BatchReady, batch_ready_handler)
        event_bus.subscribe(BatchDriverAssigned, batch_driver_assigned_handler)
        event_bus.subscribe(BatchInTransit, batch_in_transit_handler)
        event_bus.subscribe(BatchDelivered, batch_delivered_handler)
        event_bus.subscribe(BatchCancelled, batch_cancelled_handler)
        event_bus.subscribe(BatchWeightReconciled, batch_weight_reconciled_handler)
