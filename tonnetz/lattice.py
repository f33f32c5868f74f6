"""Tonnetz lattice construction.

A lattice of radius ``N`` holds one node for every integer coordinate
``(i, j)`` with ``|i|, |j| <= N``.  Each node sits at ``i * v1 + j * v2``
(scaled), where ``v1`` points along the perfect-fifth axis and ``v2`` along the
major-third axis, 60 degrees apart, so neighbouring nodes form equilateral
triangles.

Each unit cell ``(i, j)`` contributes two triangles:

- ``{(i, j), (i+1, j), (i, j+1)}`` - root, fifth and major third: a major triad.
- ``{(i+1, j), (i, j+1), (i+1, j+1)}`` - the flipped triangle: a minor triad.

Polarity is not assumed from the construction, it is measured: the sign of the
cross product of the triangle's two edge vectors tells the orientation, and
orientation alone decides major or minor.

The lattice is immutable once built.  Identities are structured keys
(`NodeKey`, `TriadKey`) so lookups are plain dictionary reads::

    lattice = build_lattice(radius=3, scale=1.5)
    node = lattice.node(NodeKey(1, 0))      # G
    lattice.node_for_note(64)               # NodeKey(i=0, j=1), the E nearest the origin
"""

import dataclasses
import math
import types
import typing

import tonnetz.pitch


Position = typing.Tuple[float, float]

FIFTH_AXIS: Position = (1.0, 0.0)
THIRD_AXIS: Position = (math.cos(math.pi / 3), math.sin(math.pi / 3))

POLARITY_MAJOR = "major"
POLARITY_MINOR = "minor"


class NodeKey (typing.NamedTuple):

	"""Lattice coordinate: ``i`` fifths and ``j`` major thirds from the origin."""

	i: int
	j: int


class TriadKey (typing.NamedTuple):

	"""Identity of one triangle: its unit cell and which half of the cell it is."""

	i: int
	j: int
	flipped: bool


class Edge (typing.NamedTuple):

	"""An unordered pair of nodes, stored with ``a < b``."""

	a: NodeKey
	b: NodeKey


	@classmethod
	def between (cls, first: NodeKey, second: NodeKey) -> "Edge":

		"""Return the canonical edge joining two nodes, whatever their order."""

		if second < first:
			first, second = second, first

		return cls(first, second)


@dataclasses.dataclass(frozen=True)
class LatticeNode:

	"""
	A single lattice point with its derived position and pitch class.
	"""

	key: NodeKey
	position: Position
	pitch_class: int


	@property
	def name (self) -> str:

		"""Pitch-class name of this node, e.g. ``"F#"``."""

		return tonnetz.pitch.pitch_class_to_name(self.pitch_class)


@dataclasses.dataclass(frozen=True)
class Triad:

	"""
	One triangle of the lattice and the chord it spells.

	Attributes:
		key: Unit cell and orientation.
		nodes: The three node identities in construction order.
		centroid: Mean of the three node positions.
		polarity: ``"major"`` or ``"minor"``.
		root: Pitch class of the chord root.
	"""

	key: TriadKey
	nodes: typing.Tuple[NodeKey, NodeKey, NodeKey]
	centroid: Position
	polarity: str
	root: int


	@property
	def name (self) -> str:

		"""Chord name, e.g. ``"C"`` or ``"Em"``."""

		suffix = "" if self.polarity == POLARITY_MAJOR else "m"

		return f"{tonnetz.pitch.pitch_class_to_name(self.root)}{suffix}"


def node_position (i: int, j: int, scale: float = 1.0) -> Position:

	"""Return the 2D position of coordinate ``(i, j)``."""

	return (
		scale * (i * FIFTH_AXIS[0] + j * THIRD_AXIS[0]),
		scale * (i * FIFTH_AXIS[1] + j * THIRD_AXIS[1])
	)


def orientation (p1: Position, p2: Position, p3: Position) -> float:

	"""Return the z-component of ``(p2 - p1) x (p3 - p1)``."""

	e1 = (p2[0] - p1[0], p2[1] - p1[1])
	e2 = (p3[0] - p1[0], p3[1] - p1[1])

	return e1[0] * e2[1] - e1[1] * e2[0]


def classify_polarity (p1: Position, p2: Position, p3: Position) -> str:

	"""Return ``"major"`` for a counter-clockwise triangle, ``"minor"`` otherwise."""

	return POLARITY_MAJOR if orientation(p1, p2, p3) > 0 else POLARITY_MINOR


def _distance_from_origin (key: NodeKey) -> int:

	"""Squared distance from the origin in unit lengths (exact for 60-degree axes)."""

	return key.i * key.i + key.j * key.j + key.i * key.j


@dataclasses.dataclass(frozen=True)
class Lattice:

	"""
	An immutable region of the Tonnetz.

	Build one with :func:`build_lattice`.  ``nodes`` maps each `NodeKey` to
	its `LatticeNode`; ``edges`` and ``triads`` are tuples in construction
	order.
	"""

	radius: int
	scale: float
	nodes: typing.Mapping[NodeKey, LatticeNode]
	edges: typing.Tuple[Edge, ...]
	triads: typing.Tuple[Triad, ...]
	_triads_by_key: typing.Mapping[TriadKey, Triad] = dataclasses.field(repr=False)
	_nodes_by_pitch_class: typing.Mapping[int, typing.Tuple[NodeKey, ...]] = dataclasses.field(repr=False)


	def node (self, key: NodeKey) -> LatticeNode:

		"""Return the node at ``key``; raises ``KeyError`` outside the lattice."""

		return self.nodes[key]


	def triad (self, key: TriadKey) -> Triad:

		"""Return the triad at ``key``; raises ``KeyError`` outside the lattice."""

		return self._triads_by_key[key]


	def nodes_with_pitch_class (self, pitch_class: int) -> typing.Tuple[NodeKey, ...]:

		"""Return every node carrying ``pitch_class``, nearest the origin first."""

		return self._nodes_by_pitch_class.get(pitch_class % 12, ())


	def node_for_note (self, note: int) -> NodeKey:

		"""Return the node that represents a MIDI note number.

		Octave information is discarded; of all nodes with the note's pitch
		class the one nearest the origin wins, ties going to the smallest
		``(i, j)``.

		Raises:
			LookupError: If no node in this lattice carries the pitch class.
		"""

		candidates = self.nodes_with_pitch_class(tonnetz.pitch.note_number_to_pitch_class(note))

		if not candidates:
			raise LookupError(f"No lattice node for MIDI note {note}")

		return candidates[0]


def build_lattice (radius: int, scale: float = 1.0) -> Lattice:

	"""Generate the nodes, edges and triads of a lattice region.

	Parameters:
		radius: Largest ``|i|`` and ``|j|`` generated. ``0`` gives a single node.
		scale: Distance between adjacent nodes.

	Returns:
		A `Lattice` with ``(2N+1)^2`` nodes and ``2 * (2N)^2`` triads.

	Raises:
		ValueError: If ``radius`` is negative or ``scale`` is not positive.
	"""

	if isinstance(radius, bool) or not isinstance(radius, int) or radius < 0:
		raise ValueError(f"Lattice radius must be a non-negative integer, got {radius!r}")

	if scale <= 0:
		raise ValueError("Lattice scale must be positive")

	nodes: typing.Dict[NodeKey, LatticeNode] = {}

	for i in range(-radius, radius + 1):
		for j in range(-radius, radius + 1):
			key = NodeKey(i, j)
			nodes[key] = LatticeNode(
				key = key,
				position = node_position(i, j, scale),
				pitch_class = tonnetz.pitch.pitch_class_of(i, j)
			)

	edges: typing.List[Edge] = []
	seen_edges: typing.Set[Edge] = set()
	triads: typing.List[Triad] = []

	def add_edge (first: NodeKey, second: NodeKey) -> None:

		edge = Edge.between(first, second)

		if edge in seen_edges:
			return

		seen_edges.add(edge)
		edges.append(edge)

	def add_triad (key: TriadKey, corners: typing.Tuple[NodeKey, NodeKey, NodeKey]) -> None:

		p1, p2, p3 = (nodes[corner].position for corner in corners)
		polarity = classify_polarity(p1, p2, p3)

		# Major triangles start on their root; minor ones carry it second.
		root_corner = corners[0] if polarity == POLARITY_MAJOR else corners[1]

		add_edge(corners[0], corners[1])
		add_edge(corners[0], corners[2])
		add_edge(corners[1], corners[2])

		triads.append(Triad(
			key = key,
			nodes = corners,
			centroid = ((p1[0] + p2[0] + p3[0]) / 3, (p1[1] + p2[1] + p3[1]) / 3),
			polarity = polarity,
			root = nodes[root_corner].pitch_class
		))

	for i in range(-radius, radius):
		for j in range(-radius, radius):

			add_triad(
				TriadKey(i, j, False),
				(NodeKey(i, j), NodeKey(i + 1, j), NodeKey(i, j + 1))
			)

			add_triad(
				TriadKey(i, j, True),
				(NodeKey(i + 1, j), NodeKey(i, j + 1), NodeKey(i + 1, j + 1))
			)

	by_pitch_class: typing.Dict[int, typing.List[NodeKey]] = {}

	for key, node in nodes.items():
		by_pitch_class.setdefault(node.pitch_class, []).append(key)

	return Lattice(
		radius = radius,
		scale = scale,
		nodes = types.MappingProxyType(nodes),
		edges = tuple(edges),
		triads = tuple(triads),
		_triads_by_key = types.MappingProxyType({triad.key: triad for triad in triads}),
		_nodes_by_pitch_class = types.MappingProxyType({
			pc: tuple(sorted(keys, key=lambda k: (_distance_from_origin(k), k)))
			for pc, keys in by_pitch_class.items()
		})
	)
