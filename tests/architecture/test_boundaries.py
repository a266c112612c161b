from pytest_archon import archrule

DRIVERS = ("sqlalchemy*", "aiosmtplib*")


def test_domain_isolation() -> None:
    """
    Domain types, results and validation are the innermost layer.
    They must not import collaborators, the service or any driver.
    """
    (
        archrule("domain_isolation")
        .match("cqrs_ddd_mfa.domain")
        .match("cqrs_ddd_mfa.results")
        .match("cqrs_ddd_mfa.exceptions")
        .match("cqrs_ddd_mfa.validation")
        .should_not_import("cqrs_ddd_mfa.stores*")
        .should_not_import("cqrs_ddd_mfa.notifications*")
        .should_not_import("cqrs_ddd_mfa.service")
        .should_not_import("cqrs_ddd_mfa.factory")
        .should_not_import("jinja2*")
        .should_not_import(*DRIVERS)
        .check("cqrs_ddd_mfa", only_direct_imports=True)
    )


def test_ports_layering() -> None:
    """
    Ports (interfaces) should not depend on Adapters (implementations).
    """
    (
        archrule("ports_layering")
        .match("cqrs_ddd_mfa.ports")
        .match("cqrs_ddd_mfa.notifications.ports")
        .should_not_import("cqrs_ddd_mfa.stores*")
        .should_not_import("cqrs_ddd_mfa.notifications.smtp")
        .should_not_import("cqrs_ddd_mfa.notifications.jinja")
        .should_not_import(*DRIVERS)
        .check("cqrs_ddd_mfa", only_direct_imports=True)
    )


def test_core_logic_independent_of_adapters() -> None:
    """
    The state machine, recovery manager, limiter and service talk to
    collaborators through ports only. Wiring belongs to the factory.
    """
    (
        archrule("core_logic_isolation")
        .match("cqrs_ddd_mfa.state_machine")
        .match("cqrs_ddd_mfa.recovery")
        .match("cqrs_ddd_mfa.limiter")
        .match("cqrs_ddd_mfa.service")
        .match("cqrs_ddd_mfa.boundary")
        .should_not_import("cqrs_ddd_mfa.stores*")
        .should_not_import("cqrs_ddd_mfa.factory")
        .should_not_import("cqrs_ddd_mfa.notifications.smtp")
        .should_not_import(*DRIVERS)
        .check("cqrs_ddd_mfa", only_direct_imports=True)
    )


def test_adapters_do_not_reach_back_into_core() -> None:
    """
    Stores and notification adapters must not depend on the core logic
    that uses them, nor on each other.
    """
    (
        archrule("stores_isolation")
        .match("cqrs_ddd_mfa.stores*")
        .should_not_import("cqrs_ddd_mfa.notifications*")
        .should_not_import("cqrs_ddd_mfa.state_machine")
        .should_not_import("cqrs_ddd_mfa.recovery")
        .should_not_import("cqrs_ddd_mfa.service")
        .should_not_import("cqrs_ddd_mfa.factory")
        .check("cqrs_ddd_mfa", only_direct_imports=True)
    )
    (
        archrule("notifications_isolation")
        .match("cqrs_ddd_mfa.notifications*")
        .should_not_import("cqrs_ddd_mfa.stores*")
        .should_not_import("cqrs_ddd_mfa.state_machine")
        .should_not_import("cqrs_ddd_mfa.recovery")
        .should_not_import("cqrs_ddd_mfa.service")
        .should_not_import("sqlalchemy*")
        .check("cqrs_ddd_mfa", only_direct_imports=True)
    )
