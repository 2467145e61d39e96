from protean.core.repository import BaseRepository
from protean.domain import Domain
from protean.exceptions import ValidationError
from protean.utils import Database
from protean.utils.query import Q
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError


def conditional_update(repository: BaseRepository, criteria: Q, values: dict) -> int:
    """``UPDATE ... SET values WHERE criteria``, committed on its own connection.

    Returns the number of rows matched; zero means another writer moved the
    row first. The in-memory adapter has no row locks, so its provider lock is
    held across the match and the write, as protean's own ``_claim`` does.
    """
    dao = repository._dao.outside_uow()
    provider = dao.provider
    if provider.__database__ == Database.memory.value:
        with provider._locks[provider.name]:
            return dao._update_all(criteria, dict(values))
    return dao._update_all(criteria, dict(values))


def read_committed(repository: BaseRepository, identifier):
    """Load the latest committed row, bypassing any Unit of Work snapshot.

    Retry loops around ``conditional_update`` re-read through this so a
    lost race is followed by a fresh value, not the same stale one.
    """
    return repository._dao.outside_uow().get(identifier)


def conditional_delete(repository: BaseRepository, criteria: Q) -> int:
    """``DELETE ... WHERE criteria`` on its own connection. Returns rows removed."""
    dao = repository._dao.outside_uow()
    provider = dao.provider
    if provider.__database__ == Database.memory.value:
        with provider._locks[provider.name]:
            return dao._delete_all(criteria)
    return dao._delete_all(criteria)


def insert_if_absent(repository: BaseRepository, aggregate) -> bool:
    """Insert ``aggregate`` on its own connection unless its identity is taken.

    Returns False when another writer created the row first.
    """
    dao = repository._dao.outside_uow()
    provider = dao.provider
    try:
        if provider.__database__ == Database.memory.value:
            with provider._locks[provider.name]:
                dao.save(aggregate)
        else:
            dao.save(aggregate)
    except (ValidationError, IntegrityError):
        return False
    return True


def _relational_providers(domain: Domain):
    for _, provider in domain.providers.items():
        if provider.conn_info["provider"] in ("sqlite", "postgresql"):
            yield provider


def setup_db(domain: Domain):
    """Create tables for every aggregate, entity and projection of the domain."""
    with domain.domain_context():
        for provider in _relational_providers(domain):
            engine = create_engine(provider.conn_info["database_uri"])

            # Touching _dao registers each model with the provider's SQLAlchemy metadata
            for registry in (domain.registry.aggregates, domain.registry.entities, domain.registry.projections):
                for _, record in registry.items():
                    if record.cls.meta_.provider == provider.name:
                        domain.repository_for(record.cls)._dao  # noqa: B018

            provider._metadata.create_all(engine)


def drop_db(domain: Domain):
    """Drop every table the domain created."""
    with domain.domain_context():
        for provider in _relational_providers(domain):
            engine = create_engine(provider.conn_info["database_uri"])
            provider._metadata.drop_all(engine)
