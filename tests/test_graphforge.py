#!/usr/bin/env python3
"""
Tests for the GraphForge graph, model/processor composition, NLP building
blocks, BERT heads and the request layer.

Run all tests:
    python -m pytest tests/ -v --tb=short
"""

import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
import torch

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


VOCAB_TERMS = [
    "[PAD]", "[UNK]", "[CLS]", "[SEP]", "[MASK]",
    "the", "cat", "sat", "on", "mat", "dog", "a", "is", "what", "where",
    "who", "paris", "city", "capital", "of", "france", "hello", "world",
    "great", "movie", "bad", "##s", ".", "?", "!", "it", "was",
]


def make_vocab():
    from graphforge.nlp import Vocabulary
    return Vocabulary(VOCAB_TERMS)


def make_bert(seed: int = 0):
    from graphforge.bert import Bert
    from graphforge.config import GraphForgeConfig
    torch.manual_seed(seed)
    return Bert(GraphForgeConfig.for_smoke_test().bert, make_vocab())


def set_linear(linear, w, b):
    linear.w.value.copy_(torch.tensor(w, dtype=torch.float64))
    linear.b.value.copy_(torch.tensor(b, dtype=torch.float64))


TOKENS = ["[CLS]", "the", "cat", "sat", "on", "the", "mat", "[SEP]"]


# =============================================================================
# Graph Tests
# =============================================================================

class TestGraph:
    """Tests for nodes, primitive and composite operators."""

    def test_leaves(self):
        """Constants and inputs are leaves without operands."""
        from graphforge.graph import Graph
        g = Graph()
        c = g.constant(2.0)
        x = g.new_variable([1.0, 2.0])
        assert c.is_leaf and x.is_leaf
        assert c.operands == () and x.operands == ()
        assert not c.requires_grad

    def test_creation_order_is_topological(self):
        """Every operand was created before the node that uses it."""
        from graphforge.graph import Graph
        g = Graph()
        x = g.new_variable([1.0, -2.0, 3.0])
        y = g.tanh(g.add(x, g.prod_scalar(x, g.constant(2.0))))
        assert [n.index for n in g.nodes] == list(range(len(g)))
        for node in g.nodes:
            assert all(op.index < node.index for op in node.operands)
        assert y.index == len(g) - 1

    def test_param_wrapped_by_reference(self):
        """param() returns one memoized node that shares the param storage."""
        from graphforge.graph import Graph
        from graphforge.nn import Param
        p = Param([1.0, 2.0, 3.0])
        g = Graph()
        n1 = g.param(p)
        n2 = g.param(p)
        assert n1 is n2
        assert n1.requires_grad
        assert n1.value.data_ptr() == p.value.data_ptr()

        g.add(n1, n1)
        assert torch.equal(p.value, torch.tensor([1.0, 2.0, 3.0], dtype=torch.float64))

    def test_add_shape_mismatch(self):
        from graphforge.errors import ShapeMismatchError
        from graphforge.graph import Graph
        g = Graph()
        with pytest.raises(ShapeMismatchError):
            g.add(g.new_variable([1.0, 2.0]), g.new_variable([1.0, 2.0, 3.0]))

    def test_failed_operator_appends_nothing(self):
        from graphforge.errors import ShapeMismatchError
        from graphforge.graph import Graph
        g = Graph()
        a, b = g.new_variable([1.0]), g.new_variable([1.0, 2.0])
        with pytest.raises(ShapeMismatchError):
            g.sub(a, b)
        assert len(g) == 2

    def test_cross_graph_operand(self):
        """Operators reject nodes from another graph."""
        from graphforge.errors import CrossGraphError
        from graphforge.graph import Graph
        g1, g2 = Graph(), Graph()
        with pytest.raises(CrossGraphError):
            g1.add(g1.new_variable([1.0]), g2.new_variable([1.0]))

    def test_concat_and_stack_empty(self):
        from graphforge.errors import EmptyOperandListError
        from graphforge.graph import Graph
        g = Graph()
        with pytest.raises(EmptyOperandListError):
            g.concat()
        with pytest.raises(EmptyOperandListError):
            g.stack()

    def test_sum_and_mean_empty(self):
        """sum/mean on zero operands must fail, never return a default."""
        from graphforge.errors import EmptyOperandListError
        from graphforge.graph import Graph
        g = Graph()
        with pytest.raises(EmptyOperandListError):
            g.sum()
        with pytest.raises(EmptyOperandListError):
            g.mean()
        assert len(g) == 0

    @pytest.mark.parametrize("n", [1, 2, 3, 7])
    def test_mean_is_sum_over_n(self, n):
        from graphforge.graph import Graph
        torch.manual_seed(n)
        g = Graph()
        xs = [g.new_variable(torch.randn(5)) for _ in range(n)]
        expected = g.sum(*xs).value / n
        assert torch.allclose(g.mean(*xs).value, expected)

    def test_mean_built_from_primitives(self):
        """mean of 3 operands = 2 adds + count constant + div_scalar."""
        from graphforge.graph import Graph
        g = Graph()
        xs = [g.new_variable([float(i)]) for i in range(3)]
        before = len(g)
        y = g.mean(*xs)
        ops = [n.op for n in g.nodes[before:]]
        assert ops == ["add", "add", "leaf", "div_scalar"]
        assert y.scalar_value() == pytest.approx(1.0)

    def test_positive_elu_is_positive(self):
        """ELU(x) + 1 > 0 at x = 0 and for large negative x."""
        from graphforge.graph import Graph
        g = Graph()
        x = g.new_variable([0.0, -1.0, -10.0, -20.0, 3.0])
        y = g.positive_elu(x).value
        assert (y > 0).all()
        assert y[0].item() == pytest.approx(1.0)
        assert y[4].item() == pytest.approx(4.0)

    def test_positive_elu_float64_cutoff(self):
        """Positive down to about x = -37; exp(x) - 1 rounds to -1 below that."""
        from graphforge.graph import Graph
        g = Graph()
        y = g.positive_elu(g.new_variable([-30.0, -36.0, -40.0, -100.0])).value
        assert y[0].item() > 0 and y[1].item() > 0
        assert y[2].item() == 0.0 and y[3].item() == 0.0

    def test_sum_and_mean_reject_foreign_operand(self):
        """A single operand from another graph is not passed through."""
        from graphforge.errors import CrossGraphError
        from graphforge.graph import Graph
        g1, g2 = Graph(), Graph()
        foreign = g2.new_variable([1.0])
        with pytest.raises(CrossGraphError):
            g1.sum(foreign)
        with pytest.raises(CrossGraphError):
            g1.mean(foreign)
        with pytest.raises(TypeError):
            g1.sum("x")
        assert len(g1) == 0

    def test_positive_elu_composition(self):
        """positive_elu appends its primitives in order."""
        from graphforge.graph import Graph
        g = Graph()
        x = g.new_variable([1.0])
        g.positive_elu(x)
        assert [n.op for n in g.nodes[1:]] == ["leaf", "elu", "leaf", "add_scalar"]

    def test_matrix_vector_mul(self):
        from graphforge.errors import ShapeMismatchError
        from graphforge.graph import Graph
        g = Graph()
        m = g.new_variable([[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]])
        y = g.mul(m, g.new_variable([1.0, 1.0]))
        assert y.value.tolist() == [3.0, 7.0, 11.0]
        with pytest.raises(ShapeMismatchError):
            g.mul(m, g.new_variable([1.0, 1.0, 1.0]))

    def test_separate_vec_order(self):
        from graphforge.graph import Graph
        g = Graph()
        parts = g.separate_vec(g.new_variable([4.0, 5.0, 6.0]))
        assert [p.scalar_value() for p in parts] == [4.0, 5.0, 6.0]

    def test_index_errors(self):
        from graphforge.graph import Graph
        g = Graph()
        x = g.new_variable([1.0, 2.0])
        with pytest.raises(IndexError):
            g.at_vec(x, 2)
        with pytest.raises(IndexError):
            g.slice_vec(x, 1, 3)

    def test_invoke_unknown_operator(self):
        from graphforge.graph import Graph
        g = Graph()
        with pytest.raises(ValueError, match="Unknown operator"):
            g.invoke("concat", g.new_variable([1.0]))

    def test_deterministic(self):
        """Same operands and operator sequence give bit-identical values."""
        from graphforge.graph import Graph

        def run():
            g = Graph()
            x = g.new_variable([0.3, -1.7, 2.2])
            return g.softmax(g.gelu(g.mean(x, g.square(x)))).value

        assert torch.equal(run(), run())

    def test_clear_releases_nodes(self):
        from graphforge.graph import Graph
        from graphforge.nn import Param
        p = Param([1.0])
        g = Graph()
        g.param(p)
        g.constant(1.0)
        g.clear()
        assert len(g) == 0
        assert p.value.tolist() == [1.0]


# =============================================================================
# Composition Tests
# =============================================================================

class TestComposition:
    """Tests for Model / Processor / Context composition."""

    def test_linear_identity_golden(self):
        """Stack[Linear(4→3), identity] reproduces W·x + b exactly."""
        from graphforge.nn import Activation, Linear, Stack, evaluation
        linear = Linear(4, 3)
        set_linear(
            linear,
            [[1.0, 2.0, 3.0, 4.0], [0.0, 1.0, 0.0, 1.0], [-1.0, 0.0, 2.0, 0.0]],
            [0.5, -1.0, 2.0],
        )
        model = Stack(linear, Activation("identity"))
        with evaluation(model) as proc:
            y = proc.forward(proc.graph.new_variable([1.0, 2.0, 3.0, 4.0]))
            assert len(y) == 1
            assert y[0].value.tolist() == [30.5, 5.0, 7.0]

    def test_stack_equals_nested_application(self):
        from graphforge.nn import Activation, Context, Linear, Stack
        torch.manual_seed(1)
        l1, act, l2 = Linear(3, 4), Activation("tanh"), Linear(4, 2)
        stack = Stack(l1, act, l2)
        ctx = Context()
        proc = stack.new_processor(ctx)
        x = ctx.graph.new_variable([0.1, -0.4, 0.9])

        nested = l2.new_processor(ctx).forward(
            *act.new_processor(ctx).forward(*l1.new_processor(ctx).forward(x))
        )
        assert torch.allclose(proc.forward(x)[0].value, nested[0].value)

    def test_stack_order_matters(self):
        from graphforge.nn import Activation, Linear, Stack, evaluation
        linear = Linear(2, 2)
        set_linear(linear, [[1.0, 0.0], [0.0, -1.0]], [0.0, 0.0])
        relu = Activation("relu")
        results = []
        for model in (Stack(linear, relu), Stack(relu, linear)):
            with evaluation(model) as proc:
                results.append(proc.forward(proc.graph.new_variable([1.0, 2.0]))[0].value.tolist())
        assert results[0] == [1.0, 0.0]
        assert results[1] == [1.0, -2.0]

    def test_processor_tree_mirrors_model(self):
        from graphforge.nn import Context

        def shape(node):
            return [shape(c) for c in node.children()] if hasattr(node, "named_children") \
                else [shape(c) for c in node.children]

        bert = make_bert()
        proc = bert.new_processor(Context())
        assert shape(bert) == shape(proc)
        for model_child, proc_child in zip(bert.children(), proc.children):
            assert proc_child.model is model_child

    def test_whole_tree_shares_one_graph(self):
        from graphforge.nn import Context

        def walk(p):
            yield p
            for c in p.children:
                yield from walk(c)

        ctx = Context()
        proc = make_bert().new_processor(ctx)
        assert all(p.graph is ctx.graph for p in walk(proc))

    def test_set_mode_propagates(self):
        from graphforge.nn import Context, Mode

        def walk(p):
            yield p
            for c in p.children:
                yield from walk(c)

        proc = make_bert().new_processor(Context(mode=Mode.INFERENCE))
        proc.set_mode(Mode.TRAINING)
        assert all(p.mode is Mode.TRAINING for p in walk(proc))

    def test_dropout_is_mode_sensitive(self):
        """Dropout passes through in inference; mode changes leave built nodes alone."""
        from graphforge.nn import Context, Dropout, Mode
        ctx = Context(mode=Mode.INFERENCE)
        proc = Dropout(0.5).new_processor(ctx)
        x = ctx.graph.new_variable(torch.ones(64))
        assert proc.forward(x)[0] is x

        proc.set_mode(Mode.TRAINING)
        torch.manual_seed(0)
        y = proc.forward(x)[0]
        assert y.op == "prod"
        assert set(y.value.unique().tolist()) <= {0.0, 2.0}
        assert torch.equal(x.value, torch.ones(64, dtype=torch.float64))

    def test_named_params(self):
        bert = make_bert()
        names = [name for name, _ in bert.named_params()]
        assert len(names) == len(set(names))
        assert "encoder.layers.0.attention.query.w" in names
        assert "embeddings.words.table" in names
        assert "classifier.b" in names

    def test_aliased_child_params_counted_once(self):
        from graphforge.nn import Linear, Stack
        shared = Linear(3, 3)
        model = Stack(shared, shared)
        assert len(model.params()) == 2
        assert model.n_params == 12

    def test_isolation_across_graphs(self):
        """Two processor trees on two graphs never share nodes."""
        from graphforge.nn import Context
        bert = make_bert()
        c1, c2 = Context(), Context()
        y1 = bert.new_processor(c1).encode(TOKENS)
        y2 = bert.new_processor(c2).encode(TOKENS)
        assert not {id(n) for n in c1.graph.nodes} & {id(n) for n in c2.graph.nodes}
        assert all(n.graph is c1.graph for n in y1)
        for a, b in zip(y1, y2):
            assert torch.equal(a.value, b.value)

    def test_concurrent_evaluations(self):
        """Concurrent requests with identical inputs give identical outputs."""
        from graphforge.nn import Mode, evaluation
        bert = make_bert()

        def run(_):
            with evaluation(bert, Mode.INFERENCE) as proc:
                return proc.pool(proc.encode(TOKENS)).value.clone()

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(run, range(8)))
        assert all(torch.equal(results[0], r) for r in results[1:])

    def test_activation_params_checked_at_construction(self):
        """Only elu takes a param, and only one."""
        from graphforge.errors import ConfigurationError
        from graphforge.nn import Activation
        with pytest.raises(ConfigurationError):
            Activation("relu", 2.0)
        with pytest.raises(ConfigurationError):
            Activation("positive_elu", 1.0)
        with pytest.raises(ConfigurationError):
            Activation("elu", 1.0, 2.0)
        assert Activation("elu").activation_params == (1.0,)
        assert Activation("elu", 0.5).activation_params == (0.5,)

    def test_evaluation_releases_graph_on_error(self):
        from graphforge.nn import Linear, evaluation
        with pytest.raises(RuntimeError):
            with evaluation(Linear(2, 2)) as proc:
                graph = proc.graph
                proc.forward(graph.new_variable([1.0, 2.0]))
                raise RuntimeError("boom")
        assert len(graph) == 0


# =============================================================================
# Stacked Embeddings Tests
# =============================================================================

class TestStackedEmbeddings:
    """Tests for the stacked embeddings model."""

    WORDS = ["the", "cat", "unknownword", "sat"]

    def test_single_encoder_skips_concat(self):
        """One encoder: projection(encoder(words)) with no concat node."""
        from graphforge.nlp import StackedEmbeddings, WordEmbeddings
        from graphforge.nn import Context, Linear
        torch.manual_seed(0)
        words = WordEmbeddings(make_vocab(), 4)
        projection = Linear(4, 3)
        model = StackedEmbeddings([words], projection)

        ctx = Context()
        ys = model.new_processor(ctx).encode(self.WORDS)
        assert "concat" not in {n.op for n in ctx.graph.nodes}

        direct = projection.new_processor(ctx).forward(*words.new_processor(ctx).encode(self.WORDS))
        assert len(ys) == len(self.WORDS)
        for y, d in zip(ys, direct):
            assert torch.equal(y.value, d.value)

    def test_multiple_encoders_concatenate(self):
        from graphforge.nlp import StackedEmbeddings, WordEmbeddings
        from graphforge.nn import Context, Linear
        vocab = make_vocab()
        model = StackedEmbeddings([WordEmbeddings(vocab, 4), WordEmbeddings(vocab, 2)], Linear(6, 3))
        ctx = Context()
        ys = model.new_processor(ctx).encode(self.WORDS)
        assert [tuple(y.shape) for y in ys] == [(3,)] * len(self.WORDS)
        assert sum(n.op == "concat" for n in ctx.graph.nodes) == len(self.WORDS)

    def test_non_encoder_child_fails_at_construction(self):
        from graphforge.errors import ConfigurationError
        from graphforge.nlp import StackedEmbeddings
        from graphforge.nn import Context, Linear
        model = StackedEmbeddings([Linear(2, 2)], Linear(2, 2))
        with pytest.raises(ConfigurationError, match="index 0"):
            model.new_processor(Context())

    def test_forward_is_rejected(self):
        from graphforge.errors import CapabilityMisuseError
        from graphforge.nlp import StackedEmbeddings, WordEmbeddings
        from graphforge.nn import Context, Linear
        ctx = Context()
        proc = StackedEmbeddings([WordEmbeddings(make_vocab(), 2)], Linear(2, 2)).new_processor(ctx)
        with pytest.raises(CapabilityMisuseError):
            proc.forward(ctx.graph.new_variable([1.0, 2.0]))

    def test_unknown_word_uses_unk_row(self):
        from graphforge.nlp import WordEmbeddings
        from graphforge.nn import Context
        vocab = make_vocab()
        emb = WordEmbeddings(vocab, 4)
        ys = emb.new_processor(Context()).encode(["unknownword"])
        assert torch.equal(ys[0].value, emb.table.value[vocab.id("[UNK]")])


# =============================================================================
# Head Tests
# =============================================================================

class TestHeads:
    """Tests for the BERT task heads."""

    def test_span_classifier_split(self):
        """Index 0 → start logit, index 1 → end logit, one pair per position."""
        from graphforge.bert import SpanClassifier
        from graphforge.nn import Context
        head = SpanClassifier(3)
        set_linear(head, [[1.0, 0.0, 0.0], [0.0, 0.0, 1.0]], [0.0, 10.0])
        ctx = Context()
        proc = head.new_processor(ctx)
        xs = [ctx.graph.new_variable([float(i), 0.0, -float(i)]) for i in range(4)]
        starts, ends = proc.classify(xs)
        assert len(starts) == len(ends) == 4
        assert [s.scalar_value() for s in starts] == [0.0, 1.0, 2.0, 3.0]
        assert [e.scalar_value() for e in ends] == [10.0, 9.0, 8.0, 7.0]

    def test_discriminator_sign_mapping(self):
        """Positive → 1, negative → 0, exactly zero → 1."""
        from graphforge.bert import Discriminator, DiscriminatorConfig
        from graphforge.nn import Context
        model = Discriminator(DiscriminatorConfig(
            input_size=1, hidden_size=1, hidden_activation="identity",
        ))
        set_linear(model[0], [[1.0]], [0.0])
        set_linear(model[2], [[1.0]], [0.0])
        ctx = Context()
        xs = [ctx.graph.new_variable([v]) for v in (2.5, -3.0, 0.0, 1e-9, -1e-9)]
        assert model.new_processor(ctx).discriminate(xs) == [1, 0, 1, 1, 0]

    def test_binarize(self):
        from graphforge.bert.heads import binarize
        assert binarize(0.0) == 1
        assert binarize(-0.0) == 1
        assert binarize(7.0) == 1
        assert binarize(-7.0) == 0

    def test_predict_masked(self):
        from graphforge.bert import Predictor, PredictorConfig
        from graphforge.nn import Context
        model = Predictor(PredictorConfig(input_size=4, hidden_size=4, output_size=10))
        ctx = Context()
        proc = model.new_processor(ctx)
        encoded = [ctx.graph.new_variable(torch.randn(4)) for _ in range(5)]
        predictions = proc.predict_masked(encoded, [1, 3])
        assert sorted(predictions) == [1, 3]
        assert all(tuple(p.shape) == (10,) for p in predictions.values())
        with pytest.raises(IndexError):
            proc.predict_masked(encoded, [5])

    def test_classifier_needs_two_labels(self):
        from graphforge.bert import Classifier
        with pytest.raises(ValueError):
            Classifier(4, ["ONLY"])


# =============================================================================
# BERT Tests
# =============================================================================

class TestBert:
    """Tests for the assembled BERT model."""

    def test_encode_shape(self):
        from graphforge.nn import evaluation
        with evaluation(make_bert()) as proc:
            encoded = proc.encode(TOKENS)
            assert len(encoded) == len(TOKENS)
            assert all(tuple(e.shape) == (8,) for e in encoded)

    def test_task_methods(self):
        from graphforge.nn import evaluation
        with evaluation(make_bert()) as proc:
            encoded = proc.encode(TOKENS)
            pooled = proc.pool(encoded)
            assert tuple(pooled.shape) == (8,)
            assert tuple(proc.predict_seq_relationship(pooled).shape) == (2,)
            assert len(proc.token_classification(encoded)) == len(TOKENS)
            assert tuple(proc.sequence_classification(encoded).shape) == (2,)
            assert len(proc.discriminate(encoded)) == len(TOKENS)
            starts, ends = proc.classify_span(encoded)
            assert len(starts) == len(ends) == len(TOKENS)
            predictions = proc.predict_masked(encoded, [2])
            assert tuple(predictions[2].shape) == (len(VOCAB_TERMS),)

    def test_forward_is_rejected(self):
        from graphforge.errors import CapabilityMisuseError
        from graphforge.nn import evaluation
        with evaluation(make_bert()) as proc:
            with pytest.raises(CapabilityMisuseError):
                proc.forward()

    def test_too_long_sequence(self):
        from graphforge.nn import evaluation
        with evaluation(make_bert()) as proc:
            with pytest.raises(ValueError, match="positions"):
                proc.encode(["the"] * 33)

    def test_vocab_size_mismatch(self):
        from graphforge.bert import Bert
        from graphforge.config import GraphForgeConfig
        from graphforge.errors import ConfigurationError
        from graphforge.nlp import Vocabulary
        with pytest.raises(ConfigurationError):
            Bert(GraphForgeConfig.for_smoke_test().bert, Vocabulary(["[UNK]"]))

    def test_save_load_round_trip(self, tmp_path):
        from graphforge.bert import load_model, save_model
        from graphforge.nn import evaluation
        bert = make_bert(seed=3)
        save_model(bert, tmp_path / "tiny")
        loaded = load_model(tmp_path / "tiny")

        assert loaded.labels == bert.labels
        with evaluation(bert) as p1, evaluation(loaded) as p2:
            for a, b in zip(p1.encode(TOKENS), p2.encode(TOKENS)):
                assert torch.allclose(a.value, b.value)

    def test_load_shape_mismatch(self, tmp_path):
        from graphforge.errors import ShapeMismatchError
        from graphforge.nn import Linear, load_params, save_params
        save_params(Linear(2, 3), tmp_path / "w.safetensors")
        with pytest.raises(ShapeMismatchError):
            load_params(Linear(3, 3), tmp_path / "w.safetensors")

    def test_failed_load_leaves_params_untouched(self, tmp_path):
        """A shape mismatch on a later param must not overwrite earlier ones."""
        from graphforge.errors import ShapeMismatchError
        from graphforge.nn import Linear, Stack, load_params, save_params
        torch.manual_seed(0)
        save_params(Stack(Linear(2, 2), Linear(2, 3)), tmp_path / "w.safetensors")
        target = Stack(Linear(2, 2), Linear(3, 3))
        before = [p.value.clone() for p in target.params()]

        with pytest.raises(ShapeMismatchError):
            load_params(target, tmp_path / "w.safetensors")
        for old, p in zip(before, target.params()):
            assert torch.equal(old, p.value)

    def test_load_missing_file(self, tmp_path):
        from graphforge.bert import load_model
        with pytest.raises(FileNotFoundError):
            load_model(tmp_path / "nothing")


# =============================================================================
# Config Tests
# =============================================================================

class TestConfig:
    """Tests for the configuration system."""

    def test_default_config_validates(self):
        from graphforge.config import GraphForgeConfig
        GraphForgeConfig().validate()

    def test_smoke_test_config(self):
        from graphforge.config import GraphForgeConfig
        config = GraphForgeConfig.for_smoke_test()
        config.validate()
        assert config.bert.hidden_size == 8
        assert config.bert.labels == ["NEGATIVE", "POSITIVE"]

    def test_heads_must_divide_hidden_size(self):
        from graphforge.config import BertConfig
        with pytest.raises(ValueError, match="divisible"):
            BertConfig(hidden_size=100, num_attention_heads=7).validate()

    def test_unknown_activation(self):
        from graphforge.config import BertConfig
        with pytest.raises(ValueError, match="hidden_act"):
            BertConfig(hidden_act="swish").validate()

    def test_default_labels(self):
        from graphforge.config import BertConfig
        assert BertConfig().labels == ["LABEL_0", "LABEL_1"]

    def test_bad_id2label(self):
        from graphforge.config import BertConfig
        from graphforge.errors import ConfigurationError
        with pytest.raises(ConfigurationError):
            _ = BertConfig(id2label={"zero": "A", "1": "B"}).labels

    def test_yaml_round_trip(self, tmp_path):
        from graphforge.config import GraphForgeConfig
        config = GraphForgeConfig.for_smoke_test()
        path = tmp_path / "config.yaml"
        config.to_yaml(path)
        loaded = GraphForgeConfig.from_yaml(path)
        assert loaded.bert == config.bert
        assert loaded.service == config.service

    def test_from_json_ignores_unknown_keys(self, tmp_path):
        import json
        from graphforge.config import BertConfig
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "hidden_size": 16, "num_attention_heads": 4, "architectures": ["BertModel"],
            "id2label": {"0": "NEG", "1": "POS", "2": "NEU"},
        }))
        config = BertConfig.from_json(path)
        assert config.hidden_size == 16
        assert config.labels == ["NEG", "POS", "NEU"]


# =============================================================================
# Tokenizer and Service Tests
# =============================================================================

class TestTokenizer:
    """Tests for the vocabulary and WordPiece tokenizer adapter."""

    def test_vocabulary_round_trip(self, tmp_path):
        from graphforge.nlp import Vocabulary
        vocab = make_vocab()
        vocab.save(tmp_path / "vocab.txt")
        loaded = Vocabulary.from_file(tmp_path / "vocab.txt")
        assert list(loaded) == VOCAB_TERMS
        assert loaded.id("cat") == VOCAB_TERMS.index("cat")
        assert loaded.id("zebra") is None

    def test_wordpiece(self):
        from graphforge.nlp import WordPieceTokenizer
        tok = WordPieceTokenizer(make_vocab())
        tokens = tok.tokenize("The cats sat.")
        assert [t.text for t in tokens] == ["the", "cat", "##s", "sat", "."]
        assert (tokens[0].start, tokens[0].end) == (0, 3)

    def test_vocabulary_file_one_id_per_line(self, tmp_path):
        """Blank lines keep their id and CRLF endings are stripped."""
        from graphforge.nlp import Vocabulary
        path = tmp_path / "vocab.txt"
        path.write_bytes(b"[PAD]\r\n\r\n[UNK]\r\n\r\ncat\r\n")
        vocab = Vocabulary.from_file(path)
        assert len(vocab) == 5
        assert vocab.id("[UNK]") == 2
        assert vocab.id("cat") == 4
        assert vocab.term(3) == ""
        assert "cat\r" not in vocab

    def test_special_tokens_kept_whole(self):
        from graphforge.nlp import WordPieceTokenizer
        tok = WordPieceTokenizer(make_vocab())
        assert [t.text for t in tok.tokenize("the [MASK] sat")] == ["the", "[MASK]", "sat"]


class TestService:
    """Tests for the in-process request layer."""

    @pytest.fixture
    def service(self):
        from graphforge.bert import BertService
        from graphforge.config import GraphForgeConfig
        return BertService(make_bert(), GraphForgeConfig.for_smoke_test().service)

    def test_encode(self, service):
        reply = service.encode("hello world")
        assert len(reply.vector) == 8
        assert all(isinstance(v, float) for v in reply.vector)
        assert reply.took >= 0

    def test_discriminate(self, service):
        reply = service.discriminate("the cat sat on the mat")
        assert [t.text for t in reply.tokens] == ["the", "cat", "sat", "on", "the", "mat"]
        assert {t.label for t in reply.tokens} <= {"ORIGINAL", "REPLACED"}

    def test_predict(self, service):
        reply = service.predict("the [MASK] sat on the [MASK]")
        assert len(reply.tokens) == 2
        assert all(t.text in VOCAB_TERMS for t in reply.tokens)
        assert (reply.tokens[0].start, reply.tokens[0].end) == (4, 10)

    def test_answer(self, service):
        passage = "paris is the capital of france"
        reply = service.answer(passage, "what is the capital of france?")
        assert 1 <= len(reply.answers) <= 2
        confidences = [a.confidence for a in reply.answers]
        assert confidences == sorted(confidences, reverse=True)
        for a in reply.answers:
            assert 0.0 <= a.confidence <= 1.0
            assert passage[a.start:a.end] == a.text

    def test_classify(self, service):
        reply = service.classify("what a great movie", text2="it was bad")
        assert reply.label in ("NEGATIVE", "POSITIVE")
        assert sum(p.confidence for p in reply.distribution) == pytest.approx(1.0)
        assert reply.confidence == max(p.confidence for p in reply.distribution)


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
