from django.apps import AppConfig


class OrdersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.orders"
    label = "orders"

    def ready(self) -> None:
        from modules.orders.events import (
            OrderApproved,
            OrderCreated,
            OrderRejected,
            OrderReopened,
        )
        from modules.orders.handlers import (
            order_approved_handler,
            order_created_handler,
            order_rejected_handler,
            order_reopened_handler,
        )
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(OrderCreated, order_created_handler)
        event_bus.subscribe(OrderApproved, order_approved_handler)
        event_bus.subscribe(OrderRejected, order_rejected_handler)
        event_bus.subscribe(OrderReopened, order_reopened_handler)
