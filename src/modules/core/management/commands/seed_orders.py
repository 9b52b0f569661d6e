from __future__ import annotations

import random
from decimal import Decimal

from django.core.management.base import BaseCommand

from modules.core.authentication import Principal, Role
from modules.orders.constants import OrderStatus
from modules.orders.dtos import (
    CancelOrderDTO,
    CreateOrderDTO,
    OrderItemDTO,
    ShippingAddressDTO,
    StatusUpdateDTO,
)
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService

CONSUMERS = ["consumer-ana", "consumer-bruno", "consumer-carla", "consumer-daniel"]
VENDORS = ["vendor-acme", "vendor-globex", "vendor-initech"]
ADDRESSES = [
    ("12 Market Street", "Springfield", "IL", "62701", "US"),
    ("88 Harbour Road", "Leeds", None, "LS1 4DY", "GB"),
    ("5 Rue de la Paix", "Paris", None, "75002", "FR"),
]

# Statuses a seeded order is walked through, in order.
PROGRESSIONS = [
    [],
    [OrderStatus.PROCESSING],
    [OrderStatus.PROCESSING, OrderStatus.SHIPPED],
    [OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.OUT_FOR_DELIVERY],
    [
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
    ],
]


class Command(BaseCommand):
    help = "Seed database with sample orders in every lifecycle state."

    def add_arguments(self, parser):
        parser.add_argument("--count", type=int, default=20)
        parser.add_argument("--seed", type=int, default=42)

    def handle(self, *args, **options):
        rng = random.Random(options["seed"])
        service = OrderService(order_repository=OrderDjangoRepository())
        admin = Principal.of("seed-admin", Role.ADMIN)

        self.stdout.write("Seeding orders...")
        created = cancelled = 0
        for index in range(options["count"]):
            consumer_id = rng.choice(CONSUMERS)
            vendor_id = rng.choice(VENDORS)
            line1, city, province, postal_code, country = rng.choice(ADDRESSES)
            dto = CreateOrderDTO(
                consumer_id=consumer_id,
                vendor_id=vendor_id,
                payment_id=f"pay_seed_{index:04d}",
                items=[
                    OrderItemDTO(
                        product_id=f"sku-{rng.randint(100, 999)}",
                        quantity=rng.randint(1, 3),
                        price=Decimal(rng.randint(199, 9999)) / 100,
                    )
                    for _ in range(rng.randint(1, 3))
                ],
                shipping_address=ShippingAddressDTO(
                    line1=line1,
                    city=city,
                    province=province,
                    postal_code=postal_code,
                    country=country,
                ),
            )
            order, _ = service.create_order(admin, dto)
            created += 1

            if rng.random() < 0.15:
                service.cancel_order(
                    admin, str(order.id), CancelOrderDTO(reason="Changed my mind")
                )
                cancelled += 1
                continue

            vendor = Principal.of(vendor_id, Role.VENDOR)
            for new_status in rng.choice(PROGRESSIONS):
                carrier = "UPS" if new_status == OrderStatus.SHIPPED else ""
                service.update_status(
                    vendor,
                    str(order.id),
                    StatusUpdateDTO(
                        order_status=new_status,
                        carrier=carrier,
                        tracking_number=f"1Z{rng.randint(10**8, 10**9 - 1)}" if carrier else "",
                    ),
                )

        self.stdout.write(
            self.style.SUCCESS(f"Seed completed: orders={created}, cancelled={cancelled}")
        )
