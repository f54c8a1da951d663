"""Interior geometry record layouts."""
from construct import Float32l, Int8ul, Int16sl, Int16ul, Int32sl, Int32ul, Padding, Struct

Vec3 = Float32l[3]

HeaderRecord = Struct(
    "build_id" / Int32ul,
    "texture_scale" / Float32l,
    "min_bounds" / Vec3,
    "max_bounds" / Vec3,
    "num_surfaces" / Int32sl,
    "num_nodes" / Int32sl,
    "num_solid_leaves" / Int32sl,
    "num_empty_leaves" / Int32sl,
    "num_pvs_bytes" / Int32sl,
    "num_vertices" / Int32sl,
    "num_points3" / Int32sl,
    "num_points2" / Int32sl,
    "num_planes" / Int32sl,
    "highest_mip_level" / Int32sl,
)

# 24 bytes
SurfaceRecord = Struct(
    "type" / Int8ul,
    "texture_scale_shift" / Int8ul,
    "apply_ambient" / Int8ul,
    "visible_to_outside" / Int8ul,
    "material" / Int16ul,
    "texture_size" / Int8ul[2],
    "texture_offset" / Int8ul[2],
    "plane_index" / Int16ul,
    "vertex_index" / Int32ul,
    "point_index" / Int32ul,
    "vertex_count" / Int8ul,
    "plane_front" / Int8ul,
    Padding(2),
)

# 8 bytes; negative children are leaves
BSPNodeRecord = Struct(
    "plane_index" / Int16ul,
    "front" / Int16sl,
    "back" / Int16sl,
    Padding(2),
)

# 12 bytes
SolidLeafRecord = Struct(
    "surface_index" / Int32ul,
    "plane_index" / Int32ul,
    "surface_count" / Int16ul,
    "plane_count" / Int16ul,
)

# 20 bytes
EmptyLeafRecord = Struct(
    "flags" / Int16ul,
    "pvs_count" / Int16ul,
    "pvs_index" / Int32ul,
    "surface_index" / Int32ul,
    "plane_index" / Int32ul,
    "surface_count" / Int16ul,
    "plane_count" / Int16ul,
)

# 4 bytes
VertexRecord = Struct(
    "point_index" / Int16ul,
    "texture_index" / Int16ul,
)

# 16 bytes
PlaneRecord = Struct(
    "normal" / Vec3,
    "d" / Float32l,
)
