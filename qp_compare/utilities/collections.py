from typing import Callable, Generic, Iterable, TypeVar

K = TypeVar('K')
V = TypeVar('V')
T = TypeVar('T')
U = TypeVar('U')


class MultiMap(Generic[K, V], dict[K, list[V]]):
    def add(self, key: K, value: V):
        if (values := self.get(key)) is not None:
            values.append(value)
        else:
            self[key] = [value]


# Groups keep the order in which their key is first seen.
def group_by(key_function: Callable[[T], U]) -> Callable[[Iterable[T]], MultiMap[U, T]]:
    def impl(iterable: Iterable[T]) -> MultiMap[U, T]:
        result = MultiMap[U, T]()

        for element in iterable:
            result.add(key_function(element), element)

        return result

    return impl
