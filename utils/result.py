from dataclasses import dataclass, field
from typing import Generic, TypeVar, Optional, Any, Dict, Iterable, Tuple, Union
from http import HTTPStatus

T = TypeVar('T')  # Generic type variable


def _as_status(status_code: Union[int, HTTPStatus]) -> HTTPStatus:
    return status_code if isinstance(status_code, HTTPStatus) else HTTPStatus(status_code)


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Immutable outcome of a validation step.

    A Result is either a success carrying data, or a failure carrying the
    complete ordered list of error messages. It is never both.

    Attributes:
        success (bool): Indicates if the operation was successful
        data (Optional[T]): The result data (only present when success is True)
        errors (Tuple[str, ...]): Error messages (only present when success is False)
        status_code (HTTPStatus): HTTP status code (default: 200 for success, 400 for failure)
        single_message (bool): Render the message as one string instead of a list
    """
    success: bool
    data: Optional[T] = None
    errors: Tuple[str, ...] = field(default_factory=tuple)
    status_code: Optional[Union[int, HTTPStatus]] = None
    single_message: bool = False

    def __post_init__(self):
        if self.status_code is None:
            status = HTTPStatus.OK if self.success else HTTPStatus.BAD_REQUEST
        else:
            status = _as_status(self.status_code)
        # frozen dataclass, normalise through object.__setattr__
        object.__setattr__(self, "status_code", status)
        object.__setattr__(self, "errors", tuple(self.errors))

    @classmethod
    def ok(cls, data: T, status_code: Union[int, HTTPStatus] = HTTPStatus.OK) -> "Result[T]":
        """
        Create a successful Result with the provided data.

        Args:
            data (T): The data to be wrapped in the Result
            status_code (Union[int, HTTPStatus], optional): HTTP status code. Defaults to 200 OK.

        Returns:
            Result[T]: A successful Result containing the provided data
        """
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def fail(
        cls,
        errors: Union[str, Iterable[str]],
        status_code: Union[int, HTTPStatus] = HTTPStatus.BAD_REQUEST
    ) -> "Result[T]":
        """
        Create a failed Result.

        A single string produces a failure whose message renders as a string;
        an iterable produces a failure whose message renders as a list.

        Args:
            errors (Union[str, Iterable[str]]): Error message or ordered messages
            status_code (Union[int, HTTPStatus], optional): HTTP status code. Defaults to 400 BAD_REQUEST.

        Returns:
            Result[T]: A failed Result containing the error messages
        """
        if isinstance(errors, str):
            return cls(success=False, errors=(errors,), status_code=status_code, single_message=True)
        return cls(success=False, errors=tuple(errors), status_code=status_code)

    @classmethod
    def invalid_input(cls, errors: Iterable[str]) -> "Result[T]":
        """
        Create a failed Result with BAD_REQUEST status code carrying every violation.
        """
        return cls.fail(list(errors), status_code=HTTPStatus.BAD_REQUEST)

    @classmethod
    def forbidden(cls, error: str = "Access denied") -> "Result[T]":
        """
        Create a failed Result with FORBIDDEN status code.
        """
        return cls.fail(error, status_code=HTTPStatus.FORBIDDEN)

    @classmethod
    def not_found(cls, error: str = "Route not found") -> "Result[T]":
        """
        Create a failed Result with NOT_FOUND status code.
        """
        return cls.fail(error, status_code=HTTPStatus.NOT_FOUND)

    def is_success(self) -> bool:
        return self.success

    def is_failure(self) -> bool:
        return not self.success

    @property
    def message(self) -> Union[str, list]:
        """Error message in response form: a string or the ordered list."""
        if self.single_message:
            return self.errors[0] if self.errors else ""
        return list(self.errors)

    def unwrap_or_raise(self) -> T:
        """
        Get the data value or raise an exception if the Result is a failure.

        Raises:
            ValueError: If the Result is a failure, with the joined error messages

        Returns:
            T: The data value
        """
        if not self.is_success():
            raise ValueError("; ".join(self.errors) or "Operation failed")
        return self.data  # type: ignore

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert a failed Result to the error body returned by the API.

        Returns:
            Dict[str, Any]: Dictionary with statusCode, message and error
        """
        return {
            "statusCode": self.status_code.value,
            "message": self.message,
            "error": self.status_code.phrase
        }

    def __str__(self) -> str:
        status_info = f"{self.status_code.value} {self.status_code.phrase}"
        if self.is_success():
            data_repr = str(self.data)
            # Truncate long data representations
            if len(data_repr) > 100:
                data_repr = f"{data_repr[:97]}..."
            return f"Success ({status_info}): {data_repr}"
        return f"Failure ({status_info}): {'; '.join(self.errors)}"
