"""
Order lifecycle & staleness engine.

  - statuses     — OrderStatus / SeverityLevel enums
  - transitions  — allowed-transition graph and its validator
  - staleness    — heartbeat age → traffic-light severity
  - gateway      — persistence seam over the orders table
  - service      — validated status changes and field edits
  - checkpoints  — in-transit checkpoint reports (heartbeat source)
  - sweeper      — periodic severity recomputation

Usage:
    from lifecycle.service import OrderLifecycleService
    from lifecycle.gateway import SqlOrderGateway

    service = OrderLifecycleService(SqlOrderGateway(db))
    order = await service.activate(order_id, actor)
"""
