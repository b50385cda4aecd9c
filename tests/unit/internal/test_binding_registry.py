from simpledi._internal.bindings import (
    BindingRecord,
    BindingRegistry,
    DecoratorRecord,
    Lifetime,
    Strategy,
)
from simpledi._internal.service_key import ServiceKey


class Shape:
    pass


class Circle(Shape):
    pass


class Square(Shape):
    pass


class Border:
    def __init__(self, shape: Shape) -> None:
        self.shape = shape


def _type_record(
    service: type,
    implementation: type,
    *,
    name: str | None = None,
    lifetime: Lifetime = Lifetime.TRANSIENT,
    conditional: bool = False,
    member: bool = False,
) -> BindingRecord:
    return BindingRecord(
        key=ServiceKey(service, name),
        strategy=Strategy.TYPE,
        implementation=implementation,
        lifetime=lifetime,
        guard=(lambda: True) if conditional else None,
        collection_member=member,
    )


def test_binding_ids_increase_with_registration_order() -> None:
    first = _type_record(Shape, Circle)
    second = _type_record(Shape, Square)

    assert second.binding_id > first.binding_id


def test_transient_records_accumulate() -> None:
    registry = BindingRegistry()
    circle = _type_record(Shape, Circle)
    square = _type_record(Shape, Square)

    registry.add(circle)
    replaced = registry.add(square)

    assert replaced == []
    assert registry.lookup(ServiceKey(Shape)) == (circle, square)


def test_unconditional_singleton_replaces_unconditional_records() -> None:
    registry = BindingRegistry()
    circle = _type_record(Shape, Circle)
    guarded = _type_record(Shape, Circle, conditional=True)
    square = _type_record(Shape, Square, lifetime=Lifetime.SINGLETON)
    registry.add(circle)
    registry.add(guarded)

    replaced = registry.add(square)

    assert replaced == [circle]
    assert registry.lookup(ServiceKey(Shape)) == (guarded, square)


def test_names_are_independent_keys() -> None:
    registry = BindingRegistry()
    registry.add(_type_record(Shape, Circle, name="circle"))

    assert registry.contains(ServiceKey(Shape, "circle"))
    assert not registry.contains(ServiceKey(Shape))
    assert registry.has_service(Shape)


def test_lookup_all_orders_by_registration() -> None:
    registry = BindingRegistry()
    square = _type_record(Shape, Square, name="square")
    member = _type_record(Shape, Circle, member=True)
    circle = _type_record(Shape, Circle)
    registry.add(square)
    registry.add(member)
    registry.add(circle)

    assert registry.lookup_all(Shape) == [square, member, circle]
    assert registry.lookup(ServiceKey(Shape)) == (circle,)
    assert len(registry) == 3


def test_remove_returns_removed_records() -> None:
    registry = BindingRegistry()
    circle = _type_record(Shape, Circle)
    member = _type_record(Shape, Square, member=True)
    registry.add(circle)
    registry.add(member)
    registry.add_decorator(DecoratorRecord(key=ServiceKey(Shape), decorator=Border))

    removed = registry.remove(ServiceKey(Shape))

    assert removed == [circle, member]
    assert registry.lookup_all(Shape) == []
    assert registry.decorators(ServiceKey(Shape)) == []


def test_remove_unknown_key_returns_nothing() -> None:
    assert BindingRegistry().remove(ServiceKey(Shape)) == []


def test_decorators_sorted_by_order_then_registration() -> None:
    registry = BindingRegistry()
    late = DecoratorRecord(key=ServiceKey(Shape), decorator=Border, order=5)
    first_tie = DecoratorRecord(key=ServiceKey(Shape), decorator=Border, order=1)
    second_tie = DecoratorRecord(key=ServiceKey(Shape), decorator=Border, order=1)
    registry.add_decorator(late)
    registry.add_decorator(first_tie)
    registry.add_decorator(second_tie)

    assert registry.decorators(ServiceKey(Shape)) == [first_tie, second_tie, late]


def test_collections_allow_empty_unless_declared() -> None:
    registry = BindingRegistry()
    assert registry.allows_empty(Shape)

    registry.declare_collection(Shape, allow_empty=False)

    assert not registry.allows_empty(Shape)
    assert registry.declared_collections() == {Shape: False}


def test_construction_target_of_factory_is_the_factory() -> None:
    def make_shape(_: object) -> Shape:
        return Circle()

    record = BindingRecord(key=ServiceKey(Shape), strategy=Strategy.FACTORY, factory=make_shape)

    assert record.construction_target is make_shape
    assert not record.is_conditional
