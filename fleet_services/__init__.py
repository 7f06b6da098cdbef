"""
fleet_services -- Package init and public API.

Responsibility:
    Transactional orchestration over the fleet kernel.  This is the only
    layer that opens and commits units of work.

Architecture position:
    Services -- orchestration over kernel + config.

    Dependency direction:
        fleet_services/ -> fleet_kernel/  (allowed)
        fleet_services/ -> fleet_config/  (allowed)
        fleet_kernel/   -> fleet_services/ (FORBIDDEN)
"""

from fleet_services.operations import FleetOperations

__all__ = ["FleetOperations"]
