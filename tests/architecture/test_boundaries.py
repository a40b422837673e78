from pytest_archon import archrule


def test_core_independence() -> None:
    """
    Core must not import from connector packages.
    It is the foundation and connectors plug into it.
    """
    (
        archrule("core_is_independent")
        .match("reactive_messaging*")
        .exclude("reactive_messaging_jms*")
        .should_not_import("reactive_messaging_jms*")
        .check("reactive_messaging")
    )


def test_primitives_isolation() -> None:
    """
    Primitives layer is the lowest level.
    It must not import from ports, adapters, mediators, or the runtime.
    """
    (
        archrule("primitives_isolation")
        .match("reactive_messaging.primitives*")
        .should_not_import("reactive_messaging.ports*")
        .should_not_import("reactive_messaging.adapters*")
        .should_not_import("reactive_messaging.mediators*")
        .should_not_import("reactive_messaging.runtime*")
        .check("reactive_messaging")
    )


def test_ports_layering() -> None:
    """
    Ports (interfaces) should not depend on Adapters (implementations).
    """
    (
        archrule("ports_layering")
        .match("reactive_messaging.ports*")
        .should_not_import("reactive_messaging.adapters*")
        .should_not_import("reactive_messaging.mediators*")
        .check("reactive_messaging")
    )


def test_mediators_do_not_know_the_runtime() -> None:
    """The mediator layer is wired by the runtime, never the other way round."""
    (
        archrule("mediators_below_runtime")
        .match("reactive_messaging.mediators*")
        .match("reactive_messaging.channels*")
        .match("reactive_messaging.emitter*")
        .should_not_import("reactive_messaging.runtime*")
        .check("reactive_messaging")
    )


def test_jms_connector_is_broker_agnostic() -> None:
    """
    The JMS connector talks to brokers through its ports only.
    The in-memory broker is one implementation and must stay a plugin.
    """
    (
        archrule("jms_broker_agnostic")
        .match("reactive_messaging_jms*")
        .exclude("reactive_messaging_jms.memory*")
        .exclude("reactive_messaging_jms")
        .should_not_import("reactive_messaging_jms.memory*")
        .check("reactive_messaging_jms")
    )
