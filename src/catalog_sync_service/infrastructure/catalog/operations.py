"""GraphQL documents issued against the remote catalog.

Every document is named; the operation name is what shows up in logs and what
the test doubles dispatch on.
"""

# =============================================================================
# Products
# =============================================================================

PRODUCT_CREATE = """
mutation ProductCreate($input: ProductInput!) {
  productCreate(input: $input) {
    product {
      id
      variants(first: 1) {
        nodes {
          id
          inventoryItem {
            id
          }
        }
      }
    }
    userErrors {
      field
      message
    }
  }
}
"""

PRODUCT_UPDATE = """
mutation ProductUpdate($input: ProductInput!) {
  productUpdate(input: $input) {
    product {
      id
      status
    }
    userErrors {
      field
      message
    }
  }
}
"""

PRODUCT_DELETE = """
mutation ProductDelete($input: ProductDeleteInput!) {
  productDelete(input: $input) {
    deletedProductId
    userErrors {
      field
      message
    }
  }
}
"""

PRODUCT_METAFIELDS = """
query ProductMetafields($id: ID!) {
  product(id: $id) {
    id
    metafields(first: 50) {
      nodes {
        id
        namespace
        key
        value
      }
    }
  }
}
"""

PRODUCTS_WITH_METAFIELD = """
query ProductsWithMetafield($first: Int!, $after: String, $namespace: String!, $key: String!) {
  products(first: $first, after: $after) {
    pageInfo {
      hasNextPage
      endCursor
    }
    nodes {
      id
      title
      metafield(namespace: $namespace, key: $key) {
        value
      }
    }
  }
}
"""

METAFIELDS_SET = """
mutation MetafieldsSet($metafields: [MetafieldsSetInput!]!) {
  metafieldsSet(metafields: $metafields) {
    metafields {
      id
      key
      value
    }
    userErrors {
      field
      message
    }
  }
}
"""

VARIANTS_BULK_UPDATE = """
mutation ProductVariantsBulkUpdate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
  productVariantsBulkUpdate(productId: $productId, variants: $variants) {
    productVariants {
      id
      price
    }
    userErrors {
      field
      message
    }
  }
}
"""

# =============================================================================
# Inventory and Publishing
# =============================================================================

LOCATIONS = """
query Locations {
  locations(first: 1) {
    nodes {
      id
    }
  }
}
"""

INVENTORY_ADJUST = """
mutation InventoryAdjustQuantities($input: InventoryAdjustQuantitiesInput!) {
  inventoryAdjustQuantities(input: $input) {
    inventoryAdjustmentGroup {
      reason
    }
    userErrors {
      field
      message
    }
  }
}
"""

PUBLICATIONS = """
query Publications($first: Int!) {
  publications(first: $first) {
    nodes {
      id
    }
  }
}
"""

PUBLISHABLE_PUBLISH = """
mutation PublishablePublish($id: ID!, $input: [PublicationInput!]!) {
  publishablePublish(id: $id, input: $input) {
    userErrors {
      field
      message
    }
  }
}
"""

# =============================================================================
# Collections
# =============================================================================

COLLECTION_BY_ID = """
query CollectionById($id: ID!) {
  collection(id: $id) {
    id
    title
  }
}
"""

CUSTOM_COLLECTIONS = """
query CustomCollections($first: Int!, $after: String) {
  collections(first: $first, after: $after, query: "collection_type:custom") {
    pageInfo {
      hasNextPage
      endCursor
    }
    nodes {
      id
      title
      handle
    }
  }
}
"""

COLLECTION_PRODUCTS = """
query CollectionProducts($id: ID!, $first: Int!, $after: String, $namespace: String!) {
  collection(id: $id) {
    id
    products(first: $first, after: $after) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        id
        status
        metafields(first: 50, namespace: $namespace) {
          nodes {
            key
            value
          }
        }
      }
    }
  }
}
"""

# =============================================================================
# Metafield and Metaobject Definitions
# =============================================================================

METAFIELD_DEFINITIONS = """
query MetafieldDefinitions {
  metafieldDefinitions(first: 100, ownerType: PRODUCT) {
    nodes {
      id
      name
      namespace
      key
      validations {
        name
        value
      }
    }
  }
}
"""

METAFIELD_DEFINITION_UPDATE = """
mutation MetafieldDefinitionUpdate($definition: MetafieldDefinitionUpdateInput!) {
  metafieldDefinitionUpdate(definition: $definition) {
    updatedDefinition {
      id
    }
    userErrors {
      field
      message
    }
  }
}
"""

METAOBJECT_DEFINITIONS = """
query MetaobjectDefinitions {
  metaobjectDefinitions(first: 100) {
    nodes {
      id
      name
      fieldDefinitions {
        key
        name
        validations {
          name
          value
        }
      }
    }
  }
}
"""

METAOBJECT_DEFINITION_UPDATE = """
mutation MetaobjectDefinitionUpdate($id: ID!, $definition: MetaobjectDefinitionUpdateInput!) {
  metaobjectDefinitionUpdate(id: $id, definition: $definition) {
    metaobjectDefinition {
      id
    }
    userErrors {
      field
      message
    }
  }
}
"""

# =============================================================================
# Metaobjects
# =============================================================================

METAOBJECTS_BY_TYPE = """
query MetaobjectsByType($type: String!, $first: Int!, $after: String) {
  metaobjects(type: $type, first: $first, after: $after) {
    pageInfo {
      hasNextPage
      endCursor
    }
    nodes {
      id
      fields {
        key
        value
      }
    }
  }
}
"""

METAOBJECT_CREATE = """
mutation MetaobjectCreate($metaobject: MetaobjectCreateInput!) {
  metaobjectCreate(metaobject: $metaobject) {
    metaobject {
      id
    }
    userErrors {
      field
      message
    }
  }
}
"""

METAOBJECT_UPDATE = """
mutation MetaobjectUpdate($id: ID!, $metaobject: MetaobjectUpdateInput!) {
  metaobjectUpdate(id: $id, metaobject: $metaobject) {
    metaobject {
      id
    }
    userErrors {
      field
      message
    }
  }
}
"""

METAOBJECT_DELETE = """
mutation MetaobjectDelete($id: ID!) {
  metaobjectDelete(id: $id) {
    deletedId
    userErrors {
      field
      message
    }
  }
}
"""

# =============================================================================
# Files
# =============================================================================

STAGED_UPLOADS_CREATE = """
mutation StagedUploadsCreate($input: [StagedUploadInput!]!) {
  stagedUploadsCreate(input: $input) {
    stagedTargets {
      url
      resourceUrl
      parameters {
        name
        value
      }
    }
    userErrors {
      field
      message
    }
  }
}
"""

FILE_CREATE = """
mutation FileCreate($files: [FileCreateInput!]!) {
  fileCreate(files: $files) {
    files {
      id
    }
    userErrors {
      field
      message
    }
  }
}
"""

FILE_NODES = """
query FileNodes($ids: [ID!]!) {
  nodes(ids: $ids) {
    ... on MediaImage {
      id
      fileStatus
      image {
        url
      }
    }
    ... on GenericFile {
      id
      fileStatus
      url
    }
  }
}
"""
