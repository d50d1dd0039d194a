"""GraphQL documents sent to RSC.

Operation names match the ones the RSC web UI issues so that API audit
trails stay recognisable. Every connection query takes $first/$after and
returns pageInfo { endCursor hasNextPage }.
"""

CLUSTER_LIST_QUERY = """
query ClusterListQuery($first: Int, $after: String, $filter: ClusterFilterInput, $sortBy: ClusterSortByEnum, $sortOrder: SortOrder) {
  clusterConnection(first: $first, after: $after, filter: $filter, sortBy: $sortBy, sortOrder: $sortOrder) {
    edges {
      cursor
      node {
        id
        name
        status
        version
        type
        lastConnectionTime
        geoLocation {
          address
        }
        state {
          connectedState
        }
        metric {
          totalCapacity
          usedCapacity
          availableCapacity
        }
      }
    }
    pageInfo {
      endCursor
      hasNextPage
    }
  }
}
"""

SLA_DOMAIN_LIST_QUERY = """
query SLADomainListQuery($first: Int, $after: String, $filter: [GlobalSlaFilterInput!], $sortBy: SlaQuerySortByField, $sortOrder: SortOrder) {
  slaDomains(first: $first, after: $after, filter: $filter, sortBy: $sortBy, sortOrder: $sortOrder) {
    edges {
      cursor
      node {
        id
        name
        ... on GlobalSlaReply {
          description
          objectTypes
          protectedObjectCount
          isRetentionLockedSla
          baseFrequency {
            duration
            unit
          }
          archivalSpecs {
            storageSetting {
              id
              name
            }
          }
          replicationSpecsV2 {
            cluster {
              id
              name
            }
          }
        }
      }
    }
    pageInfo {
      endCursor
      hasNextPage
    }
  }
}
"""

OBJECT_LIST_QUERY = """
query snappableConnection($first: Int, $after: String, $filter: SnappableFilterInput, $sortBy: SnappableSortByEnum, $sortOrder: SortOrder) {
  snappableConnection(first: $first, after: $after, filter: $filter, sortBy: $sortBy, sortOrder: $sortOrder) {
    edges {
      node {
        id
        name
        objectType
        location
        protectionStatus
        complianceStatus
        archivalComplianceStatus
        replicationComplianceStatus
        totalSnapshots
        missedSnapshots
        lastSnapshot
        localStorage
        logicalBytes
        slaDomain {
          id
          name
        }
        cluster {
          id
          name
        }
      }
    }
    pageInfo {
      endCursor
      hasNextPage
    }
  }
}
"""

EVENT_SERIES_LIST_QUERY = """
query EventSeriesListQuery($first: Int, $after: String, $filters: ActivitySeriesFilter, $sortBy: ActivitySeriesSortField, $sortOrder: SortOrder) {
  activitySeriesConnection(first: $first, after: $after, filters: $filters, sortBy: $sortBy, sortOrder: $sortOrder) {
    edges {
      node {
        id
        activitySeriesId
        lastUpdated
        startTime
        lastActivityType
        lastActivityStatus
        objectId
        objectName
        objectType
        severity
        location
        clusterUuid
        clusterName
        activityConnection(first: 1) {
          nodes {
            message
            time
            severity
          }
        }
      }
    }
    pageInfo {
      endCursor
      hasNextPage
    }
  }
}
"""

AUDIT_LOG_LIST_QUERY = """
query AuditLogListQuery($first: Int, $after: String, $filters: UserAuditFilter, $sortBy: UserAuditSortField, $sortOrder: SortOrder) {
  userAuditConnection(first: $first, after: $after, filters: $filters, sortBy: $sortBy, sortOrder: $sortOrder) {
    edges {
      node {
        id
        time
        message
        severity
        status
        userName
        userNote
        objectId
        objectName
        objectType
        clusterId
        clusterName
      }
    }
    pageInfo {
      endCursor
      hasNextPage
    }
  }
}
"""

TAG_ASSIGNMENT_LIST_QUERY = """
query TagAssignmentListQuery($first: Int, $after: String, $filter: [Filter!]) {
  vSphereVmNewConnection(first: $first, after: $after, filter: $filter) {
    edges {
      node {
        id
        name
        cluster {
          id
          name
        }
        vsphereTagPath {
          fid
          name
          objectType
        }
      }
    }
    pageInfo {
      endCursor
      hasNextPage
    }
  }
}
"""

SNAPSHOT_LIST_QUERY = """
query SnapshotOfASnappableConnection($workloadId: String!, $first: Int, $after: String, $snapshotFilter: [SnapshotQueryFilterInput!], $sortBy: SnapshotQuerySortByField, $sortOrder: SortOrder, $timeRange: TimeRangeInput) {
  snapshotOfASnappableConnection(workloadId: $workloadId, first: $first, after: $after, snapshotFilter: $snapshotFilter, sortBy: $sortBy, sortOrder: $sortOrder, timeRange: $timeRange) {
    edges {
      node {
        id
        date
        expirationDate
        isOnDemandSnapshot
        isExpired
        snappableId
        ... on CdmSnapshot {
          slaDomain {
            id
            name
          }
          cluster {
            id
            name
          }
          snappableNew {
            id
            name
            objectType
          }
        }
      }
    }
    pageInfo {
      endCursor
      hasNextPage
    }
  }
}
"""

LIVE_MOUNT_LIST_QUERY = """
query vSphereLiveMountListQuery($first: Int, $after: String, $filter: [VsphereLiveMountFilterInput!], $sortBy: VsphereLiveMountSortBy) {
  vSphereLiveMounts(first: $first, after: $after, filter: $filter, sortBy: $sortBy) {
    edges {
      node {
        id
        vmStatus
        isReady
        mountTimestamp
        sourceVm {
          id
          name
        }
        mountedVm {
          id
          name
        }
        cluster {
          id
          name
        }
      }
    }
    pageInfo {
      endCursor
      hasNextPage
    }
  }
}
"""

LIVE_MOUNT_MUTATION = """
mutation vSphereLiveMountMutation($input: VsphereVmInitiateLiveMountV2Input!) {
  vsphereVmInitiateLiveMountV2(input: $input) {
    id
    status
    error {
      message
    }
  }
}
"""

UNMOUNT_LIVE_MOUNT_MUTATION = """
mutation UnmountLiveMountMutation($livemountId: String!, $force: Boolean) {
  vsphereVmDeleteLiveMount(livemountId: $livemountId, force: $force) {
    id
    status
    error {
      message
    }
  }
}
"""
