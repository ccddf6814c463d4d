"""Shared IR fixtures."""

import pytest

RESERVED_TYPES = """\
%Qubit = type { i32 }
%Result = type { i32 }
%QubitArray = type { %Qubit* }
%ResultArray = type { %Result* }
"""

RUNTIME_DECLARATIONS = """\
declare %QubitArray @__quantum__rt__qubit_allocate_array(i64)
declare %Qubit @__quantum__rt__qubit_array_get_element(%QubitArray, i64)
declare void @__quantum__rt__qubit_release_array(%QubitArray)
declare void @__quantum__qis__h__body(%Qubit)
declare void @__quantum__qis__cnot__body(%Qubit, %Qubit)
declare %Result @__quantum__qis__m__body(%Qubit)
declare void @__quantum__rt__result_record_output(%Result, i8*)
"""

# Qubit array of dynamic size %N: extract index 0, apply h, measure, release.
FULL_QIR = f"""\
; ModuleID = 'full'
source_filename = "full"

{RESERVED_TYPES}
define void @main(i64 %N) #0 {{
entry:
  %qs = call %QubitArray @__quantum__rt__qubit_allocate_array(i64 %N)
  %q0 = call %Qubit @__quantum__rt__qubit_array_get_element(%QubitArray %qs, i64 0)
  call void @__quantum__qis__h__body(%Qubit %q0)
  %r0 = call %Result @__quantum__qis__m__body(%Qubit %q0)
  call void @__quantum__rt__qubit_release_array(%QubitArray %qs)
  ret void
}}

{RUNTIME_DECLARATIONS}
attributes #0 = {{ "entry_point" }}
"""

# Same program shape with a compile-time constant register size.
STATIC_QIR = f"""\
{RESERVED_TYPES}
define void @main() #0 {{
entry:
  %n = add i64 1, 1
  %qs = call %QubitArray @__quantum__rt__qubit_allocate_array(i64 %n)
  %q0 = call %Qubit @__quantum__rt__qubit_array_get_element(%QubitArray %qs, i64 0)
  %q1 = call %Qubit @__quantum__rt__qubit_array_get_element(%QubitArray %qs, i64 1)
  call void @__quantum__qis__h__body(%Qubit %q0)
  call void @__quantum__qis__cnot__body(%Qubit %q0, %Qubit %q1)
  %r0 = call %Result @__quantum__qis__m__body(%Qubit %q0)
  %r1 = call %Result @__quantum__qis__m__body(%Qubit %q1)
  call void @__quantum__rt__result_record_output(%Result %r0, i8* null)
  call void @__quantum__rt__result_record_output(%Result %r1, i8* null)
  call void @__quantum__rt__qubit_release_array(%QubitArray %qs)
  ret void
}}

{RUNTIME_DECLARATIONS}
attributes #0 = {{ "entry_point" }}
"""

BELL_BASE = """\
; ModuleID = 'bell'
source_filename = "bell"

%Qubit = type { i32 }
%Result = type { i32 }

define void @main() #0 {
entry:
  call void @__quantum__qis__h__body(%Qubit {i32 0})
  call void @__quantum__qis__cnot__body(%Qubit {i32 0}, %Qubit {i32 1})
  call void @__quantum__qis__mz__body(%Qubit {i32 0}, %Result {i32 0})
  call void @__quantum__qis__mz__body(%Qubit {i32 1}, %Result {i32 1})
  call void @__quantum__rt__tuple_record_output(i64 2, i8* null)
  call void @__quantum__rt__result_record_output(%Result {i32 0}, i8* null)
  call void @__quantum__rt__result_record_output(%Result {i32 1}, i8* null)
  ret void
}

declare void @__quantum__qis__h__body(%Qubit)
declare void @__quantum__qis__cnot__body(%Qubit, %Qubit)
declare void @__quantum__qis__mz__body(%Qubit, %Result)
declare void @__quantum__rt__tuple_record_output(i64, i8*)
declare void @__quantum__rt__result_record_output(%Result, i8*)

attributes #0 = { "entry_point" "qir_profiles"="base_profile" "required_num_qubits"="2" "required_num_results"="2" }

!llvm.module.flags = !{!0}
!0 = !{i32 1, !"qir_major_version", i32 1}
"""


def with_body(body: str, *, attributes: str = '"entry_point"', params: str = "") -> str:
    """Wrap instructions in `@main` with the reserved types and runtime declarations."""
    return (
        f"{RESERVED_TYPES}\n"
        f"define void @main({params}) #0 {{\nentry:\n{body}\n  ret void\n}}\n\n"
        f"{RUNTIME_DECLARATIONS}\n"
        f"attributes #0 = {{ {attributes} }}\n"
    )


@pytest.fixture
def full_qir() -> str:
    return FULL_QIR


@pytest.fixture
def static_qir() -> str:
    return STATIC_QIR


@pytest.fixture
def bell_base() -> str:
    return BELL_BASE
