import asyncio
import base64
import json

import pytest

from PGT.core import node_types as nt
from PGT.core.interchange import to_node_link
from PGT.FragmentMatcher.fragment_library import FragmentLibrary
from PGT.TransformationDriver.transformation_config import TransformationConfig
from PGT.TransformationDriver.transformation_driver import (
    ConcurrentTransformationError,
    TransformationDriver,
)

from graph_builders import (
    build_broken_replacement,
    build_detector,
    build_extension_graph,
    build_loop_graph,
    build_subprocess_replacement,
    build_task_replacement,
    fragment,
)


def dump(graph):
    return json.dumps(to_node_link(graph), sort_keys=True)


def make_library():
    return FragmentLibrary([
        fragment(
            "execute",
            build_detector(nt.QUANTUM_CIRCUIT_EXECUTION_TASK, programming_language="*"),
            build_subprocess_replacement(),
        ),
        fragment(
            "shor",
            build_detector(nt.QUANTUM_COMPUTATION_TASK, algorithm="Shor"),
            build_task_replacement(nt.SCRIPT_TASK, name="Run Shor"),
        ),
    ])


def make_graph():
    return build_extension_graph(
        (nt.QUANTUM_CIRCUIT_EXECUTION_TASK, {"name": "Run", "provider": "ibmq", "programming_language": "Qiskit"}),
        (nt.QUANTUM_COMPUTATION_TASK, {"algorithm": "Shor"}),
    )


class FakeArtifactGenerator:
    def __init__(self, reference):
        self.reference = reference
        self.seen = []

    async def generate(self, candidate, graph):
        self.seen.append(candidate.entry_id)
        return self.reference


def test_resolve_and_splice_replaces_every_extension_node():
    g = make_graph()

    result = asyncio.run(TransformationDriver().resolve_and_splice(g, make_library()))

    assert result.success
    assert set(result.replaced) == {"Ext_0", "Ext_1"}
    assert not any(nt.is_extension(n.type) for n in g.nodes.values())

    subgraph = g.get_node(result.replaced["Ext_0"])
    assert subgraph.type == nt.SUBGRAPH
    assert subgraph.attributes["input_parameters"] == {"provider": "ibmq", "programming_language": "Qiskit"}
    script = g.get_node(result.replaced["Ext_1"])
    assert script.type == nt.SCRIPT_TASK
    assert script.attributes["input_parameters"] == {"algorithm": "Shor"}
    assert script.name == "Run Shor"

    assert g.get_edge("Flow_0").target_id == subgraph.id
    assert g.get_edge("Flow_1").source_id == subgraph.id
    assert g.get_edge("Flow_end").source_id == script.id
    g.validate()


def test_missing_match_leaves_graph_unchanged():
    g = build_extension_graph(
        (nt.QUANTUM_COMPUTATION_TASK, {"algorithm": "Shor"}),
        (nt.QUANTUM_COMPUTATION_TASK, {"algorithm": "Grover"}),
    )
    before = dump(g)

    result = asyncio.run(TransformationDriver().resolve_and_splice(g, make_library()))

    assert not result.success
    assert result.reason == "no_match"
    assert result.node_id == "Ext_1"
    assert dump(g) == before


def test_fragment_without_single_root_is_rejected():
    replacement = build_task_replacement()
    replacement.add_node(nt.SERVICE_TASK, node_id="Second_Task")
    library = [fragment("two_roots", build_detector(nt.QUANTUM_COMPUTATION_TASK), replacement)]
    g = build_extension_graph((nt.QUANTUM_COMPUTATION_TASK, {"algorithm": "Shor"}))
    before = dump(g)

    result = asyncio.run(TransformationDriver().resolve_and_splice(g, library))

    assert result.reason == "invalid_fragment"
    assert dump(g) == before


def test_splice_failure_rolls_back():
    library = FragmentLibrary([
        fragment("shor", build_detector(nt.QUANTUM_COMPUTATION_TASK), build_task_replacement()),
        fragment("broken", build_detector(nt.QUANTUM_CIRCUIT_EXECUTION_TASK), build_broken_replacement()),
    ])
    g = build_extension_graph(
        (nt.QUANTUM_COMPUTATION_TASK, {"algorithm": "Shor"}),
        (nt.QUANTUM_CIRCUIT_EXECUTION_TASK, {"programming_language": "Qiskit"}),
    )
    before = dump(g)

    result = asyncio.run(TransformationDriver().resolve_and_splice(g, library))

    assert not result.success
    assert result.reason == "splice_failure"
    assert result.node_id == "Ext_1"
    assert dump(g) == before
    g.validate()


def test_graph_without_extension_nodes_is_a_noop():
    g = build_loop_graph(task_types=(nt.SERVICE_TASK, nt.SCRIPT_TASK))
    before = dump(g)
    result = asyncio.run(TransformationDriver().transform(g, make_library()))
    assert result.success
    assert result.replaced == {}
    assert dump(g) == before


def test_library_provider_can_be_sync_or_async():
    async def fetch():
        await asyncio.sleep(0)
        return make_library()

    assert asyncio.run(TransformationDriver().resolve_and_splice(make_graph(), fetch)).success
    assert asyncio.run(TransformationDriver().resolve_and_splice(make_graph(), lambda: list(make_library()))).success


def test_concurrent_transformation_of_same_graph_is_rejected():
    async def scenario():
        g = make_graph()
        other = make_graph()
        released = asyncio.Event()
        driver = TransformationDriver()

        async def slow_library():
            await released.wait()
            return make_library()

        first = asyncio.create_task(driver.resolve_and_splice(g, slow_library))
        await asyncio.sleep(0)

        with pytest.raises(ConcurrentTransformationError):
            await driver.resolve_and_splice(g, make_library())
        with pytest.raises(ConcurrentTransformationError):
            await TransformationDriver().rewrite(g, None)

        # 其他图不受影响
        assert (await driver.resolve_and_splice(other, make_library())).success

        released.set()
        assert (await first).success
        # 完成后可以再次转换
        assert (await driver.resolve_and_splice(g, make_library())).success

    asyncio.run(scenario())


def test_rewrite_attaches_artifact_reference():
    g = build_loop_graph()
    generator = FakeArtifactGenerator("https://example.org/deployment-models/42")
    config = TransformationConfig(coalescing_node_name="Hybrid runtime")
    driver = TransformationDriver(config, artifact_generator=generator)
    candidate = driver.detect(g)[0]

    result = asyncio.run(driver.rewrite(g, candidate))

    assert result.succeeded
    assert generator.seen == ["Gw1"]
    new = g.get_node(result.new_node_id)
    assert new.name == "Hybrid runtime"
    assert new.attributes["deployment_model_url"] == "https://example.org/deployment-models/42"


def test_rewrite_without_artifact_reference():
    g = build_loop_graph()
    driver = TransformationDriver(artifact_generator=FakeArtifactGenerator(None))
    candidate = driver.detect(g)[0]

    result = asyncio.run(driver.rewrite(g, candidate))

    assert result.succeeded
    assert "deployment_model_url" not in g.get_node(result.new_node_id).attributes


def test_detect_renders_candidate_images():
    g = build_loop_graph()
    driver = TransformationDriver()

    assert driver.detect(g)[0].image is None
    candidate = driver.detect(g, with_images=True)[0]

    assert base64.b64decode(candidate.image).startswith(b"\x89PNG\r\n\x1a\n")
