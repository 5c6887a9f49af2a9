"""
provisioner - installation migration control plane.

Supervisors reconcile clusters, installations and their placements through
explicit state machines, claiming each entity with an optimistic row lock
before mutating it. The migration supervisor snapshots an installation's
database and restores it next to a replica in the destination cluster.

Packages:
    core        errors, logging, settings, connection/dialect/schema/orm
    model       entity dataclasses and state enums
    store       SQL entity store with compare-and-set locks
    capability  database migration capabilities (AWS RDS, unsupported)
    supervisor  cluster, installation, cluster installation, migration
    scheduling  tick loop driving the supervisors
    ops         typed operations shared by the API and the CLI
    api         FastAPI application
    cli         Typer command line
"""

__version__ = "0.1.0"
